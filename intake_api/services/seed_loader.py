"""Load users and questionnaires from a YAML seed file.

Example seed file::

    users:
      - username: admin
        password: change-me
        email: admin@example.org
        is_admin: true
    questionnaires:
      - id: 1
        name: Medical History
        questions:
          - id: 10
            text: Do you have any allergies?
            type: multiple_choice
            options: [None, Food, Medication]
            priority: 1

Users that already exist and questionnaires whose id is already taken are
left untouched, so the file can be applied on every start.
"""

from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from intake_api.logging_config import get_logger
from intake_api.models.database import transaction
from intake_api.models.questionnaire import Questionnaire
from intake_api.models.user import User
from intake_api.schemas.questionnaire import QuestionnaireImport
from intake_api.services.auth_service import hash_password
from intake_api.services.questionnaire_import import QuestionnaireImportService

logger = get_logger(__name__)


class SeedError(Exception):
    """Raised when a seed file is missing, unparsable or invalid."""
    pass


class SeedUser(BaseModel):
    """A user entry in a seed file."""
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)
    email: Optional[str] = None
    is_admin: bool = False


class SeedFile(BaseModel):
    """Root schema of a seed file."""
    users: list[SeedUser] = Field(default_factory=list)
    questionnaires: list[QuestionnaireImport] = Field(default_factory=list)


def read_seed_file(path: Union[str, Path]) -> SeedFile:
    """Parse and validate a seed file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated SeedFile

    Raises:
        SeedError: If the file is missing, is not valid YAML or fails validation
    """
    seed_path = Path(path)
    if not seed_path.exists():
        logger.error(f"Seed file not found: {seed_path}")
        raise SeedError(f"Seed file not found: {seed_path}")

    try:
        with open(seed_path, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in seed file {seed_path}: {e}")
        raise SeedError(f"Invalid YAML in seed file '{seed_path}': {e}") from e

    try:
        return SeedFile.model_validate(raw_data or {})
    except ValidationError as e:
        logger.error(f"Validation error in seed file {seed_path}: {e}")
        raise SeedError(f"Validation failed for seed file '{seed_path}': {e}") from e


class SeedLoader:
    """Applies a seed file to the database."""

    def __init__(self, db: Session):
        """Initialize the loader.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def apply(self, seed: SeedFile) -> dict:
        """Create missing users and publish missing questionnaires.

        Returns:
            dict with ``users_created`` and ``questionnaires_created``
        """
        users_created = 0
        with transaction(self.db):
            for entry in seed.users:
                if User.get_by_username(self.db, entry.username) is not None:
                    continue
                self.db.add(User(
                    username=entry.username,
                    password_hash=hash_password(entry.password),
                    email=entry.email,
                    is_admin=entry.is_admin,
                ))
                self.db.flush()
                users_created += 1

        existing_ids = set(self.db.execute(select(Questionnaire.id)).scalars())
        missing = [q for q in seed.questionnaires if q.id not in existing_ids]
        if missing:
            QuestionnaireImportService(self.db).import_questionnaires(missing, pending=False)

        logger.info(
            f"Seed applied: {users_created} users and {len(missing)} questionnaires created"
        )
        return {"users_created": users_created, "questionnaires_created": len(missing)}

    def apply_file(self, path: Union[str, Path]) -> dict:
        """Read ``path`` and apply it."""
        return self.apply(read_seed_file(path))
