"""Project management."""

from subfy_api.projects.service import ProjectsService

__all__ = ["ProjectsService"]
