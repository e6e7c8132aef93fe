"""SiteLoom: edit a deployed site's content and publish it as a pull request."""

__version__ = "0.1.0"
