"""
Evidence File Resolvers
Turn a citation's filePath into bytes for the proof viewer.

Supported locators:
- plain / file:// paths (local filesystem, optionally confined to a root)
- http(s):// URLs (signed URLs handed out by the storage collaborator)
- s3://bucket/key
- supabase://bucket/path (Supabase Storage)
"""
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol
from urllib.parse import unquote, urlparse

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from provenance.citation.errors import EvidenceLoadError
from provenance.config import RegistrySettings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedFile:
    """Raw evidence bytes plus what we know about them."""
    content: bytes
    content_type: str
    name: str

    @property
    def is_pdf(self) -> bool:
        return self.content_type == 'application/pdf' or self.content.startswith(b'%PDF')


class FileResolver(Protocol):
    def resolve(self, file_path: str) -> ResolvedFile:
        ...


def detect_content_type(content: bytes, name: str = '') -> str:
    """Detect content type from magic bytes, falling back to the file name."""
    if content.startswith(b'%PDF'):
        return 'application/pdf'
    if content.startswith(b'\xff\xd8\xff'):
        return 'image/jpeg'
    if content.startswith(b'\x89PNG\r\n\x1a\n'):
        return 'image/png'
    if content.startswith(b'GIF87a') or content.startswith(b'GIF89a'):
        return 'image/gif'
    if content.startswith(b'RIFF') and b'WEBP' in content[:12]:
        return 'image/webp'

    guessed, _ = mimetypes.guess_type(name)
    return guessed or 'application/octet-stream'


class LocalFileResolver:
    """Reads evidence from disk; relative paths resolve against ``root``."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root).resolve() if root else None

    def resolve(self, file_path: str) -> ResolvedFile:
        parsed = urlparse(file_path)
        raw_path = unquote(parsed.path) if parsed.scheme == 'file' else file_path
        if '\x00' in raw_path:
            raise EvidenceLoadError(f"Invalid evidence path: {file_path!r}", file_path)
        path = Path(raw_path)

        if self.root is not None:
            path = (self.root / path).resolve() if not path.is_absolute() else path.resolve()
            if self.root not in path.parents and path != self.root:
                raise EvidenceLoadError(f"Path escapes evidence root: {file_path}", file_path)

        try:
            content = path.read_bytes()
        except FileNotFoundError:
            raise EvidenceLoadError(f"File not found: {file_path}", file_path)
        except (OSError, ValueError) as e:
            raise EvidenceLoadError(f"Failed to read {file_path}: {e}", file_path) from e

        return ResolvedFile(content, detect_content_type(content, path.name), path.name)


class HttpFileResolver:
    """Downloads evidence from (signed) HTTP URLs."""

    def __init__(self, timeout: float = 30, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def resolve(self, file_path: str) -> ResolvedFile:
        try:
            response = self.session.get(file_path, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise EvidenceLoadError(f"Failed to download evidence: {e}", file_path) from e

        name = unquote(urlparse(file_path).path.rsplit('/', 1)[-1]) or 'document'
        header_type = (response.headers.get('Content-Type') or '').split(';')[0].strip()
        content = response.content
        content_type = detect_content_type(content, name)
        if content_type == 'application/octet-stream' and header_type:
            content_type = header_type
        return ResolvedFile(content, content_type, name)


class S3FileResolver:
    """Fetches ``s3://bucket/key`` (or a bare key in the default bucket)."""

    def __init__(self, bucket: str = '', region: str = 'us-east-1', client=None):
        self.bucket = bucket
        self.region = region
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client('s3', region_name=self.region)
        return self._client

    def resolve(self, file_path: str) -> ResolvedFile:
        parsed = urlparse(file_path)
        if parsed.scheme == 's3':
            bucket, key = parsed.netloc, parsed.path.lstrip('/')
        else:
            bucket, key = self.bucket, file_path.lstrip('/')

        if not bucket or not key:
            raise EvidenceLoadError(f"Incomplete S3 locator: {file_path}", file_path)

        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
            content = response['Body'].read()
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', '')
            if error_code in ('NoSuchKey', '404', 'NotFound'):
                logger.warning(f"[FILE_RESOLVER] File not found in S3: {key}")
                raise EvidenceLoadError(f"File not found: {file_path}", file_path) from e
            raise EvidenceLoadError(f"Failed to download from S3: {e}", file_path) from e
        except BotoCoreError as e:
            raise EvidenceLoadError(f"Failed to download from S3: {e}", file_path) from e

        name = key.rsplit('/', 1)[-1]
        content_type = detect_content_type(content, name)
        if content_type == 'application/octet-stream':
            content_type = response.get('ContentType', content_type)
        return ResolvedFile(content, content_type, name)


class SupabaseStorageResolver:
    """Fetches ``supabase://bucket/path`` (or a bare path in the default bucket)."""

    def __init__(self, bucket: str = 'documents', client=None):
        self.bucket = bucket
        self._client = client

    @property
    def client(self):
        if self._client is None:
            from provenance.services.supabase_client_factory import get_supabase_client
            self._client = get_supabase_client()
        return self._client

    def resolve(self, file_path: str) -> ResolvedFile:
        parsed = urlparse(file_path)
        if parsed.scheme == 'supabase':
            bucket, path = parsed.netloc, parsed.path.lstrip('/')
        else:
            bucket, path = self.bucket, file_path.lstrip('/')

        try:
            content = self.client.storage.from_(bucket).download(path)
        except Exception as e:
            # storage3 raises its own error types depending on version
            raise EvidenceLoadError(f"Failed to download from Supabase Storage: {e}", file_path) from e

        name = path.rsplit('/', 1)[-1]
        return ResolvedFile(content, detect_content_type(content, name), name)


class CompositeFileResolver:
    """Dispatches on the locator's scheme."""

    def __init__(self, resolvers: Dict[str, FileResolver]):
        self.resolvers = resolvers

    def resolve(self, file_path: str) -> ResolvedFile:
        if not file_path:
            raise EvidenceLoadError("Citation has no file path", file_path)

        scheme = urlparse(file_path).scheme.lower()
        # Windows drive letters parse as one-letter schemes
        if len(scheme) == 1:
            scheme = ''
        resolver = self.resolvers.get(scheme) or (self.resolvers.get('file') if scheme == '' else None)
        if resolver is None:
            raise EvidenceLoadError(f"No resolver for scheme '{scheme}'", file_path)

        logger.debug(f"[FILE_RESOLVER] Resolving {file_path} via {type(resolver).__name__}")
        return resolver.resolve(file_path)


def build_default_resolver(config: Optional[RegistrySettings] = None) -> CompositeFileResolver:
    """Wire the resolvers enabled by configuration."""
    config = config or default_settings
    local = LocalFileResolver(config.local_root or None)
    http = HttpFileResolver(timeout=config.http_timeout_seconds)
    resolvers: Dict[str, FileResolver] = {
        '': local,
        'file': local,
        'http': http,
        'https': http,
        's3': S3FileResolver(config.s3_bucket, config.aws_region),
    }
    if config.supabase_url and config.supabase_service_key:
        resolvers['supabase'] = SupabaseStorageResolver(config.supabase_bucket)
    return CompositeFileResolver(resolvers)
