import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import jwt, JWTError
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

import config
from database.models import User
from services.errors import ValidationError, AuthenticationError, PermissionDenied, ConflictError
from services.validation import clean_str, is_valid_email, password_errors

logger = logging.getLogger(__name__)

ROLES = ("ADMIN", "MANAGER", "USER")
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


class AuthService:
    @staticmethod
    def get_password_hash(password: str) -> str:
        salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            # Malformed hash or over-long password
            return False

    @staticmethod
    def create_access_token(user_id: int) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + timedelta(days=config.JWT_EXPIRE_DAYS),
        }
        return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)

    @staticmethod
    def decode_access_token(token: str) -> int:
        """Returns the user id carried by a valid token."""
        try:
            payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
            return int(payload["sub"])
        except (JWTError, KeyError, ValueError):
            raise AuthenticationError("Not authorized, token failed")

    @staticmethod
    def _check_password(password: str, label: str = "Password validation failed"):
        errors = password_errors(password)
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            errors.append(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")
        if errors:
            raise ValidationError(label, errors=errors)

    @staticmethod
    def register(
        session: Session,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        role: Optional[str] = None,
        created_by: Optional[User] = None,
    ) -> User:
        """Creates an account. Only an ADMIN may hand out a role other than USER."""
        name = clean_str(name)
        email = clean_str(email)
        if not name or not email or not password:
            raise ValidationError("Please provide name, email, and password")
        if not is_valid_email(email):
            raise ValidationError("Please provide a valid email address")
        AuthService._check_password(password)

        role = (clean_str(role) or "USER").upper()
        if role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")
        if role != "USER" and (created_by is None or created_by.role != "ADMIN"):
            raise PermissionDenied("Only an administrator can assign roles")

        email = email.lower()
        existing = session.exec(select(User).where(User.email == email)).first()
        if existing:
            raise ConflictError("User already exists with this email")

        user = User(name=name, email=email, password_hash=AuthService.get_password_hash(password), role=role)
        session.add(user)
        try:
            session.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            session.rollback()
            raise ConflictError("User already exists with this email")
        session.refresh(user)
        logger.info("Registered user %s (%s)", user.id, user.role)
        return user

    @staticmethod
    def authenticate(session: Session, email: Optional[str], password: Optional[str]) -> User:
        email = clean_str(email)
        if not email or not password:
            raise ValidationError("Please provide email and password")

        user = session.exec(select(User).where(User.email == email.lower())).first()
        if not user or not AuthService.verify_password(password, user.password_hash):
            logger.warning("Failed login for %s", email)
            raise AuthenticationError("Invalid credentials")
        return user

    @staticmethod
    def change_password(session: Session, user: User, current_password: Optional[str], new_password: Optional[str]):
        if not current_password or not new_password:
            raise ValidationError("Please provide current and new password")
        AuthService._check_password(new_password, "New password validation failed")
        if not AuthService.verify_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")

        user.password_hash = AuthService.get_password_hash(new_password)
        session.add(user)
        session.commit()

    @staticmethod
    def update_profile(session: Session, user: User, name: Optional[str]) -> User:
        name = clean_str(name)
        if not name:
            raise ValidationError("Please provide a name")
        user.name = name
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    @staticmethod
    def create_default_admin(session: Session):
        """Makes sure at least one ADMIN account exists."""
        admin = session.exec(select(User).where(User.role == "ADMIN")).first()
        if admin:
            return admin

        admin = User(
            name=config.ADMIN_NAME,
            email=config.ADMIN_EMAIL.lower(),
            password_hash=AuthService.get_password_hash(config.ADMIN_PASSWORD),
            role="ADMIN",
        )
        session.add(admin)
        session.commit()
        session.refresh(admin)
        logger.info("Created default admin account %s", admin.email)
        return admin
