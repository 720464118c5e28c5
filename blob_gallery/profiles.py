from __future__ import annotations
"""Blob store connection profiles and persistence."""
from dataclasses import dataclass
import json
import os
from pathlib import Path
from typing import Mapping, Optional

import keyring
from keyring.errors import KeyringError

ENV_ENDPOINT_URL = "BLOB_ENDPOINT_URL"
ENV_BUCKET = "BLOB_BUCKET"
ENV_REGION = "BLOB_REGION"
ENV_PUBLIC_BASE_URL = "BLOB_PUBLIC_BASE_URL"
ENV_ACCESS_KEY_ID = "BLOB_ACCESS_KEY_ID"
ENV_SECRET_ACCESS_KEY = "BLOB_SECRET_ACCESS_KEY"

_PUBLIC_FIELDS = ("name", "endpoint_url", "bucket", "region", "public_base_url", "access_key")


@dataclass
class StoreProfile:
    """Represents a saved blob store connection."""

    name: str
    endpoint_url: str
    bucket: str
    access_key: str = ""
    secret_key: str = ""
    region: str = ""
    public_base_url: str = ""


def profile_from_env(environ: Mapping[str, str] | None = None) -> Optional[StoreProfile]:
    """Build a profile from ``BLOB_*`` environment variables.

    Returns ``None`` when no bucket is configured. Missing credentials are
    left empty so the store can report them when it is first used.
    """
    env = os.environ if environ is None else environ
    bucket = env.get(ENV_BUCKET, "").strip()
    if not bucket:
        return None
    return StoreProfile(
        name="env",
        endpoint_url=env.get(ENV_ENDPOINT_URL, "").strip(),
        bucket=bucket,
        access_key=env.get(ENV_ACCESS_KEY_ID, ""),
        secret_key=env.get(ENV_SECRET_ACCESS_KEY, ""),
        region=env.get(ENV_REGION, "").strip(),
        public_base_url=env.get(ENV_PUBLIC_BASE_URL, "").strip(),
    )


class KeychainStore:
    """Encapsulates OS keychain access for secrets."""

    def __init__(self, service_name: str = "blob-gallery"):
        self._service_name = service_name

    def get_secret(self, profile_name: str) -> str:
        if not profile_name:
            return ""
        try:
            return keyring.get_password(self._service_name, profile_name) or ""
        except KeyringError:
            return ""

    def set_secret(self, profile_name: str, secret_key: str) -> None:
        if not profile_name:
            return
        if not secret_key:
            self.delete_secret(profile_name)
            return
        try:
            keyring.set_password(self._service_name, profile_name, secret_key)
        except KeyringError:
            return

    def delete_secret(self, profile_name: str) -> None:
        if not profile_name:
            return
        try:
            keyring.delete_password(self._service_name, profile_name)
        except KeyringError:
            return


class ProfileStorage:
    """JSON-backed store for profiles; secrets live in the keychain."""

    def __init__(self, storage_path: str | Path | None = None, keychain: KeychainStore | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".blob_gallery_profiles.json"
        self._path = Path(storage_path)
        self._keychain = keychain or KeychainStore()

    def load(self) -> list[StoreProfile]:
        data = self._read_data()
        profiles: list[StoreProfile] = []
        sanitized: list[dict[str, str]] = []
        saw_plaintext = False
        for entry in data:
            try:
                name = entry["name"]
                endpoint_url = entry.get("endpoint_url", "")
                bucket = entry["bucket"]
            except (KeyError, TypeError):
                continue
            secret_key = entry.get("secret_key", "")
            if secret_key:
                saw_plaintext = True
                self._keychain.set_secret(name, secret_key)
            else:
                secret_key = self._keychain.get_secret(name)
            profile = StoreProfile(
                name=name,
                endpoint_url=endpoint_url,
                bucket=bucket,
                access_key=entry.get("access_key", ""),
                secret_key=secret_key,
                region=entry.get("region", ""),
                public_base_url=entry.get("public_base_url", ""),
            )
            profiles.append(profile)
            sanitized.append(_public_fields(profile))
        if saw_plaintext:
            self._write_data(sanitized)
        return profiles

    def get(self, name: str) -> StoreProfile:
        for profile in self.load():
            if profile.name == name:
                return profile
        raise ValueError(f"Profile '{name}' does not exist")

    def save(self, profiles: list[StoreProfile]) -> None:
        data = []
        for profile in profiles:
            self._keychain.set_secret(profile.name, profile.secret_key)
            data.append(_public_fields(profile))
        existing_names = {entry.get("name") for entry in self._read_data() if isinstance(entry, dict)}
        current_names = {profile.name for profile in profiles}
        for name in existing_names - current_names:
            if isinstance(name, str) and name:
                self._keychain.delete_secret(name)
        self._write_data(data)

    def _read_data(self) -> list:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        return data if isinstance(data, list) else []

    def _write_data(self, data: list[dict[str, str]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def _public_fields(profile: StoreProfile) -> dict[str, str]:
    return {field_name: getattr(profile, field_name) for field_name in _PUBLIC_FIELDS}
