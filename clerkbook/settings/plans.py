"""YAML plan catalog loader."""

import hashlib
from pathlib import Path
from typing import Annotated

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from clerkbook.ledger.models import PlanConfig


logger = structlog.get_logger()


class PlanCatalogError(Exception):
    """Raised when the plan catalog cannot be loaded."""

    def __init__(self, file_path: str, message: str) -> None:
        """Initialize the error.

        Args:
            file_path: Catalog file path.
            message: What went wrong.
        """
        self.file_path = file_path
        super().__init__(f"Invalid plan catalog {file_path}: {message}")


class PlanCatalog(BaseModel):
    """Top-level shape of the plans YAML file.

    Example::

        plans:
          - name: free
            monthly_grant: 50
          - name: pro
            monthly_grant: 100
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    plans: Annotated[list[PlanConfig], Field(min_length=1)]


def load_plan_catalog(file_path: Path) -> dict[str, PlanConfig]:
    """Load and validate a plan catalog file.

    Args:
        file_path: Path to the YAML file.

    Returns:
        Plans keyed by name.

    Raises:
        PlanCatalogError: If the file is missing, unparseable, invalid, or
            names a plan twice.
    """
    try:
        content_bytes = file_path.read_bytes()
        parsed = yaml.safe_load(content_bytes.decode("utf-8")) or {}
        catalog = PlanCatalog.model_validate(parsed)
    except FileNotFoundError as e:
        raise PlanCatalogError(str(file_path), "file not found") from e
    except yaml.YAMLError as e:
        raise PlanCatalogError(str(file_path), f"YAML error: {e}") from e
    except ValidationError as e:
        raise PlanCatalogError(str(file_path), f"{e.error_count()} validation error(s)") from e

    plans: dict[str, PlanConfig] = {}
    for plan in catalog.plans:
        if plan.name in plans:
            raise PlanCatalogError(str(file_path), f"duplicate plan {plan.name}")
        plans[plan.name] = plan

    logger.info(
        "plan_catalog_loaded",
        component="config",
        file_path=str(file_path),
        file_sha256=hashlib.sha256(content_bytes).hexdigest(),
        plan_count=len(plans),
    )
    return plans
