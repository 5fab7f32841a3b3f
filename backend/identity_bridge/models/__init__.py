# Import models so they register with SQLAlchemy metadata.
from identity_bridge.models.local_user import LocalUser, LocalUserAttribute, LocalUserRequiredAction  # noqa: F401
