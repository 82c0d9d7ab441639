from bookstore.core.config import settings
from bookstore.core.database import get_db, Base, get_db_session
from bookstore.core.security import (
    verify_password,
    get_password_hash,
    create_access_token,
    decode_token,
)
