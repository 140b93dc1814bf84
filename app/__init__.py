"""ShelfScan application package.

Turns an uploaded shelf photo or walkthrough video into a product list and
merges it into a per-shop inventory. Subpackages include:
- api: FastAPI route definitions
- core: configuration, logging and the error taxonomy
- services: frame sampling, collage, vision providers, parsing, inventory
- schemas: media dataclasses and Pydantic models
- workers: periodic scratch-directory janitor
"""

__all__ = [
    "api",
    "core",
    "services",
    "schemas",
    "workers",
]

__version__ = "1.0.0"
