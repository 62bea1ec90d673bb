import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..settings import settings
from ..db import get_db
from ..models import AuthUser, AuthSession, utcnow

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

SUPPORTED_LANGUAGES = ("en", "fr")


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class User(BaseModel):
	username: str
	language: str = "en"


def _bcrypt_safe(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	return password.encode("utf-8")[:72].decode("utf-8", errors="ignore")


def hash_password(password: str) -> str:
	return pwd_context.hash(_bcrypt_safe(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(_bcrypt_safe(plain_password), hashed_password)


def _ensure_seed_user(db: Session) -> None:
	username = settings.seed_username
	password = settings.seed_password_plain
	if not username or not password:
		return
	if db.get(AuthUser, username) is not None:
		return
	db.add(AuthUser(username=username, password_hash=hash_password(password)))
	db.commit()
	logger.info("Seeded user %s", username)


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
	_ensure_seed_user(db)
	row = db.get(AuthUser, username)
	if row and verify_password(password, row.password_hash):
		return User(username=row.username, language=row.language or "en")
	return None


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = settings.access_token_expire_minutes
		delta = timedelta(minutes=minutes) if minutes > 0 else timedelta(days=30)
	now = datetime.now(timezone.utc)
	try:
		return now + delta
	except OverflowError:
		return datetime.max.replace(tzinfo=timezone.utc)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	to_encode.update({"exp": _resolve_expiry(expires_delta)})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	user = authenticate_user(db, form_data.username, form_data.password)
	if not user:
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	# Each login is a server-side session keyed by the token's jti
	session_id = uuid.uuid4().hex
	access_token = create_access_token({"sub": user.username, "jti": session_id})
	try:
		db.merge(AuthSession(session_id=session_id, username=user.username))
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		logger.exception("Could not persist session for %s", user.username)
		raise HTTPException(status_code=500, detail="Could not create session")
	return Token(access_token=access_token)


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		username: str | None = payload.get("sub")
		jti: str | None = payload.get("jti")
		if username is None or jti is None:
			raise credentials_exception
	except JWTError:
		raise credentials_exception
	# Revoked sessions (row deleted) stop working even while the JWT is still valid
	try:
		row = db.get(AuthSession, jti)
		if not row or row.username != username:
			raise credentials_exception
		row.last_activity_at = utcnow()
		db.commit()
		account = db.get(AuthUser, username)
	except SQLAlchemyError:
		db.rollback()
		raise credentials_exception
	return User(username=username, language=(account.language if account else None) or "en")


@router.get("/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
	return user


class RegisterRequest(BaseModel):
	username: str
	password: str
	email: Optional[str] = None
	language: str = "en"


@router.post("/register", status_code=201)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	username = (req.username or "").strip()
	password = req.password or ""
	if not username or not password:
		raise HTTPException(status_code=400, detail="username and password are required")
	if len(username) < 3 or len(username) > 128:
		raise HTTPException(status_code=400, detail="username must be 3-128 characters")
	if req.language not in SUPPORTED_LANGUAGES:
		raise HTTPException(status_code=400, detail='Invalid language. Must be "en" or "fr"')
	if db.get(AuthUser, username) is not None:
		raise HTTPException(status_code=409, detail="username already exists")
	db.add(AuthUser(
		username=username,
		password_hash=hash_password(password),
		email=(req.email or "").strip() or None,
		language=req.language,
	))
	db.commit()
	return {"ok": True}


class LanguageRequest(BaseModel):
	language: str = Field(pattern="^(en|fr)$")


@router.post("/language")
async def set_language(req: LanguageRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	row = db.get(AuthUser, user.username)
	if row is None:
		raise HTTPException(status_code=404, detail="User not found")
	row.language = req.language
	db.commit()
	return {"success": True, "language": req.language}
