"""Pydantic schemas for API request/response models."""

from .base import CamelModel, camelize
from .content import (
    AnalysisTriggerRequest,
    EditCreateRequest,
    EditStatusRequest,
    EditUpdateRequest,
    PublishEditItem,
    PublishRequest,
)

__all__ = [
    'CamelModel',
    'camelize',
    'AnalysisTriggerRequest',
    'EditCreateRequest',
    'EditStatusRequest',
    'EditUpdateRequest',
    'PublishEditItem',
    'PublishRequest',
]
