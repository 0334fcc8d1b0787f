from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import google.auth
from google.auth.exceptions import DefaultCredentialsError
from google.oauth2.service_account import Credentials as ServiceAccountCredentials
from googleapiclient.discovery import build

SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]


def _load_service_account_from_file(path: Path) -> Optional[ServiceAccountCredentials]:
    if not path.exists():
        return None
    info = json.loads(path.read_text(encoding="utf-8"))
    if "client_email" in info and "private_key" in info:
        return ServiceAccountCredentials.from_service_account_info(info, scopes=SCOPES)
    return None


def get_google_credentials(key_file: str | None = None):
    if key_file:
        creds = _load_service_account_from_file(Path(key_file))
        if creds:
            return creds

    # Application Default Credentials (metadata server, gcloud auth application-default login)
    try:
        creds, _ = google.auth.default(scopes=SCOPES)
        return creds
    except DefaultCredentialsError as exc:
        raise RuntimeError(
            "Google auth not configured. Set GOOGLE_APPLICATION_CREDENTIALS to a service account key file "
            "or configure Application Default Credentials."
        ) from exc


def get_secret_manager_client(key_file: str | None = None):
    creds = get_google_credentials(key_file)
    return build("secretmanager", "v1", credentials=creds, cache_discovery=False)
