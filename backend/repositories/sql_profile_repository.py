"""SQLite implementation of the business profile repository."""

import logging
from typing import Optional

from core.database_manager import DatabaseManager
from models.profiles import ProfileModel
from models.repositories import ProfileRepository
from models.tables import ProfileRow


logger = logging.getLogger(__name__)


class SqlProfileRepository(ProfileRepository):
    """Persist and fetch borrower profiles."""

    def __init__(self, database: DatabaseManager) -> None:
        self._database = database

    def upsert(self, model: ProfileModel) -> ProfileModel:
        """Insert or replace the profile for `model.wallet_address`.

        Raises:
            sqlalchemy.exc.IntegrityError: If the npwp belongs to another wallet.
        """
        try:
            with self._database.session() as session:
                session.merge(
                    ProfileRow(
                        wallet_address=model.wallet_address,
                        business_name=model.business_name,
                        description=model.description,
                        npwp=model.npwp,
                    )
                )
            logger.info("Profile saved wallet_address=%s", model.wallet_address)
            return model
        except Exception:
            logger.exception("Failed to save profile wallet_address=%s", model.wallet_address)
            raise

    def get_by_address(self, wallet_address: str) -> Optional[ProfileModel]:
        try:
            with self._database.session() as session:
                row = session.get(ProfileRow, wallet_address)
                return ProfileModel.from_row(row) if row is not None else None
        except Exception:
            logger.exception("Failed to get profile wallet_address=%s", wallet_address)
            raise
