"""API routers."""

from src.routers import design_systems, generation, health, ops, users, webhooks

__all__ = ["design_systems", "generation", "health", "ops", "users", "webhooks"]
