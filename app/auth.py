"""
Firebase ID-token authentication.

Tokens are verified locally: RS256 signature against Google's published x509
certificates, then audience, issuer and expiry claims. The verified ``sub``
is mapped to a ``User`` row; first-time sign-ins are registered as customers.
"""

import base64
import json
import logging
import time
from typing import Optional

import httpx
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.x509 import load_pem_x509_certificate
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import FIREBASE_PROJECT_ID
from .database import get_db
from .domain.users.repository import UserRepository
from .models import User
from .shared.access import Actor, Role

logger = logging.getLogger(__name__)

GOOGLE_CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)
CLOCK_SKEW_SECONDS = 60

security = HTTPBearer()

_cached_keys: Optional[dict] = None


def _b64decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


async def get_google_public_keys(force_refresh: bool = False) -> Optional[dict]:
    """Fetch (and memoize) Google's signing certificates keyed by kid"""
    global _cached_keys
    if _cached_keys and not force_refresh:
        return _cached_keys

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(GOOGLE_CERTS_URL)
        response.raise_for_status()
        _cached_keys = response.json()
        logger.info(f"✅ Fetched {len(_cached_keys)} Google public keys")
        return _cached_keys
    except httpx.HTTPError as e:
        logger.error(f"❌ Error fetching Google public keys: {e}")
        return None


async def verify_firebase_token(token: str) -> dict:
    """Verify signature and claims of a Firebase ID token and return its payload."""
    if not FIREBASE_PROJECT_ID:
        logger.error("❌ FIREBASE_PROJECT_ID not configured")
        raise HTTPException(status_code=500, detail="Authentication is not configured")

    parts = token.split(".")
    if len(parts) != 3:
        raise HTTPException(status_code=401, detail="Invalid token format")
    header_b64, payload_b64, signature_b64 = parts

    try:
        header = json.loads(_b64decode(header_b64))
        payload = json.loads(_b64decode(payload_b64))
        signature = _b64decode(signature_b64)
    except ValueError as e:
        raise HTTPException(status_code=401, detail="Malformed token") from e

    if header.get("alg") != "RS256" or not header.get("kid"):
        raise HTTPException(status_code=401, detail="Invalid token header")

    kid = header["kid"]
    keys = await get_google_public_keys()
    if not keys or kid not in keys:
        # Google rotates keys; refetch once before giving up
        logger.warning(f"⚠️ Key ID {kid} not cached, refreshing Google public keys")
        keys = await get_google_public_keys(force_refresh=True)
        if not keys or kid not in keys:
            raise HTTPException(status_code=401, detail="Unable to verify token signature")

    public_key = load_pem_x509_certificate(keys[kid].encode()).public_key()
    try:
        public_key.verify(
            signature,
            f"{header_b64}.{payload_b64}".encode(),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
    except InvalidSignature as e:
        logger.error("❌ Token signature verification failed")
        raise HTTPException(status_code=401, detail="Invalid token signature") from e

    if payload.get("aud") != FIREBASE_PROJECT_ID:
        raise HTTPException(status_code=401, detail="Invalid token audience")
    if payload.get("iss") != f"https://securetoken.google.com/{FIREBASE_PROJECT_ID}":
        raise HTTPException(status_code=401, detail="Invalid token issuer")

    now = time.time()
    if payload.get("exp", 0) < now:
        raise HTTPException(
            status_code=401,
            detail="Token has expired. Please refresh your session.",
            headers={"X-Token-Expired": "true"},
        )
    if payload.get("iat", 0) > now + CLOCK_SKEW_SECONDS:
        raise HTTPException(status_code=401, detail="Invalid token")

    return payload


def _register_user(db: Session, firebase_uid: str, email: Optional[str], name: str) -> User:
    """Link an existing account by email or create a new customer account."""
    if email:
        existing = db.query(User).filter(User.email == email).first()
        if existing:
            logger.info(f"🔄 Linking {email} to Firebase UID {firebase_uid}")
            existing.firebase_uid = firebase_uid
            db.commit()
            return existing

    logger.info(f"🆕 Creating new customer account: {email}")
    user = User(
        firebase_uid=firebase_uid,
        email=email or f"{firebase_uid}@users.invalid",
        full_name=name,
        roles=[Role.CUSTOMER],
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise HTTPException(
            status_code=409,
            detail="This email is already registered. Please sign in with your existing account.",
        ) from e
    db.refresh(user)
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from Firebase token"""
    payload = await verify_firebase_token(credentials.credentials)

    firebase_uid = payload.get("sub") or payload.get("user_id")
    if not firebase_uid:
        raise HTTPException(status_code=401, detail="Invalid token claims")

    user = UserRepository.get_by_firebase_uid(db, firebase_uid)
    if not user:
        user = _register_user(db, firebase_uid, payload.get("email"), payload.get("name", ""))

    if not user.is_active:
        logger.warning(f"⚠️ Inactive user {user.id} attempted to authenticate")
        raise HTTPException(status_code=403, detail="Account is deactivated")

    logger.debug(f"✅ User authenticated: {user.email}")
    return user


async def get_current_actor(user: User = Depends(get_current_user)) -> Actor:
    """Identity context handed to every core operation"""
    return Actor.of(user.id, user.roles or [])
