"""
Project Management Module

Exports:
- ProjectManager: create / get / archive projects
"""

from .project_manager import ProjectManager

__all__ = [
    "ProjectManager",
]
