"""Survey definition loader with caching and validation.

This module loads survey definitions from YAML files, validates them against
the survey creation schema, and caches the results. Loaded definitions can
be imported into the database with ``SurveyService.create``.
"""

import re
from pathlib import Path
from functools import lru_cache
from typing import Optional
import yaml
from pydantic import ValidationError

from app.config import get_settings
from app.schemas.survey import SurveyCreate
from app.logging_config import get_logger

logger = get_logger(__name__)

# Definition names map directly to file names
DEFINITION_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class SurveyDefinitionNotFoundError(Exception):
    """Raised when a survey definition file is not found."""
    pass


class SurveyDefinitionError(Exception):
    """Raised when a survey definition cannot be parsed or fails validation."""
    pass


class SurveyLoader:
    """Service for loading and caching survey definition files.

    Definitions are YAML files named ``<name>.yaml`` in the surveys
    directory. Each file holds a survey creation payload: title,
    description, settings, status and questions.
    """

    def __init__(self, surveys_dir: Optional[str] = None):
        """Initialize survey loader.

        Args:
            surveys_dir: Path to definitions directory (defaults to the
                ``surveys_dir`` setting)
        """
        if surveys_dir is None:
            surveys_dir = get_settings().surveys_dir

        self.surveys_dir = Path(surveys_dir)

        if not self.surveys_dir.exists():
            logger.warning(f"Surveys directory not found: {self.surveys_dir}")

    @lru_cache(maxsize=128)
    def load_definition(self, name: str) -> SurveyCreate:
        """Load and validate a survey definition from a YAML file.

        Results are cached; call ``clear_cache()`` after editing files.

        Args:
            name: Definition name (YAML filename without .yaml)

        Returns:
            Validated SurveyCreate payload

        Raises:
            SurveyDefinitionNotFoundError: If the file doesn't exist
            SurveyDefinitionError: If the file is invalid

        Example:
            >>> loader = SurveyLoader("surveys")
            >>> definition = loader.load_definition("customer_feedback")
            >>> definition.title
            'Customer Feedback'
        """
        if not DEFINITION_NAME_PATTERN.match(name):
            raise SurveyDefinitionNotFoundError(f"Invalid survey definition name: '{name}'")

        yaml_path = self.surveys_dir / f"{name}.yaml"

        if not yaml_path.exists():
            logger.error(f"Survey definition not found: {yaml_path}")
            raise SurveyDefinitionNotFoundError(f"Survey definition '{name}' not found at {yaml_path}")

        try:
            with open(yaml_path, 'r', encoding='utf-8') as f:
                raw_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error for {name}: {e}")
            raise SurveyDefinitionError(f"Invalid YAML in survey definition '{name}': {e}")
        except OSError as e:
            logger.error(f"Error reading survey definition {yaml_path}: {e}")
            raise SurveyDefinitionError(f"Error reading survey definition '{name}': {e}")

        if not isinstance(raw_data, dict):
            raise SurveyDefinitionError(f"Survey definition '{name}' must be a mapping")

        try:
            definition = SurveyCreate.model_validate(raw_data)
        except ValidationError as e:
            logger.error(f"Validation error for survey definition {name}: {e}")
            raise SurveyDefinitionError(f"Validation failed for survey definition '{name}': {e}")

        logger.info(f"Loaded survey definition: {name} ({len(definition.questions)} questions)")
        return definition

    def list_definitions(self) -> list[str]:
        """List all available definition names.

        Returns:
            Sorted definition names (filenames without .yaml extension)
        """
        if not self.surveys_dir.exists():
            return []

        names = [f.stem for f in self.surveys_dir.glob("*.yaml")]

        logger.debug(f"Found {len(names)} survey definitions: {names}")
        return sorted(names)

    def clear_cache(self):
        """Clear the definition cache."""
        self.load_definition.cache_clear()
        logger.info("Survey definition cache cleared")


# Global singleton instance
_loader_instance: Optional[SurveyLoader] = None


def get_survey_loader() -> SurveyLoader:
    """Get global SurveyLoader instance.

    Creates singleton instance on first call.

    Returns:
        Global SurveyLoader instance
    """
    global _loader_instance
    if _loader_instance is None:
        _loader_instance = SurveyLoader()
    return _loader_instance
