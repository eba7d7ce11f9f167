"""Download a repository snapshot archive and unpack it into a temporary directory."""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import tempfile
import zlib
from typing import Callable

import requests

from scorecard.clients import InternalError

REPO_DIR_PREFIX = "repo"
REPO_FILE_PREFIX = "githubrepo"
REPO_FILE_SUFFIX = ".tar.gz"

_CHUNK_SIZE = 64 * 1024
_ARCHIVE_ERRORS = (tarfile.TarError, OSError, EOFError, zlib.error)

logger = logging.getLogger(__name__)


class TarballNotFoundError(InternalError):
    """The repository archive could not be downloaded."""


class TarballCorruptedError(InternalError):
    """The downloaded repository archive could not be read."""


class ZipSlipError(InternalError):
    """An archive member would be written outside the destination directory."""


def extract_and_validate_archive_path(path: str, dest: str) -> str:
    """Map an archive member name to a path under ``dest``.

    The archive's top-level directory is dropped. Members escaping ``dest``
    raise ZipSlipError.
    """
    names = path.split("/", 1)
    if len(names) < 2 or not names[1]:
        return dest
    clean_path = os.path.normpath(f"{dest}{os.sep}{names[1]}")
    if not clean_path.startswith(os.path.normpath(dest) + os.sep):
        raise ZipSlipError(f"ZipSlip path detected: {names[1]}")
    return clean_path


class TarballHandler:
    """Holds an unpacked copy of a repository's files."""

    def __init__(self, session: requests.Session | None = None) -> None:
        self.session = session if session is not None else requests.Session()
        self.temp_dir = ""
        self.temp_tar_file = ""
        self.files: list[str] = []

    def setup(self, archive_url: str) -> None:
        """Download and unpack the archive; a missing or corrupt archive is skipped."""
        self.cleanup()
        try:
            self.get_tarball(archive_url)
        except TarballNotFoundError as err:
            logger.warning("unable to get tarball %s. Skipping...", err)
            return
        try:
            self.extract_tarball()
        except TarballCorruptedError as err:
            logger.warning("unable to extract tarball %s. Skipping...", err)

    def get_tarball(self, archive_url: str) -> None:
        """Download the archive named by the ``archive_url`` template to a temporary file."""
        url = archive_url.replace("{archive_format}", "tarball/", 1).replace("{/ref}", "", 1)
        try:
            resp = self.session.get(url, stream=True)
        except requests.RequestException as err:
            raise InternalError(f"http get: {err}") from err

        with resp:
            if resp.status_code in (400, 404):
                raise TarballNotFoundError(f"tarball not found: {url}: HTTP {resp.status_code}")
            try:
                temp_dir = tempfile.mkdtemp(prefix=REPO_DIR_PREFIX)
            except OSError as err:
                raise InternalError(f"tempfile.mkdtemp: {err}") from err
            self.temp_dir = temp_dir
            try:
                fd, name = tempfile.mkstemp(dir=temp_dir, prefix=REPO_FILE_PREFIX, suffix=REPO_FILE_SUFFIX)
            except OSError as err:
                raise InternalError(f"tempfile.mkstemp: {err}") from err
            with os.fdopen(fd, "wb") as out:
                try:
                    for chunk in resp.iter_content(_CHUNK_SIZE):
                        out.write(chunk)
                except (requests.RequestException, OSError) as err:
                    raise TarballNotFoundError(f"copy: {err}") from err
        self.temp_tar_file = name

    def extract_tarball(self) -> None:
        """Unpack the downloaded archive and record the files it holds."""
        try:
            archive = open(self.temp_tar_file, "rb")
        except OSError as err:
            raise InternalError(f"open: {err}") from err

        with archive:
            try:
                tar = tarfile.open(fileobj=archive, mode="r|gz")
            except _ARCHIVE_ERRORS as err:
                raise TarballCorruptedError(f"gzip: {self.temp_tar_file}: {err}") from err
            with tar:
                members = iter(tar)
                while True:
                    try:
                        member = next(members)
                    except StopIteration:
                        break
                    except _ARCHIVE_ERRORS as err:
                        raise TarballCorruptedError(f"tar next: {err}") from err
                    self._extract_member(tar, member)

    def _extract_member(self, tar: tarfile.TarFile, member: tarfile.TarInfo) -> None:
        if member.isdir():
            dir_path = extract_and_validate_archive_path(member.name, self.temp_dir)
            if dir_path == os.path.normpath(self.temp_dir):
                return
            try:
                os.mkdir(dir_path, 0o755)
            except OSError as err:
                raise InternalError(f"error during mkdir: {err}") from err
        elif member.isreg():
            if member.size <= 0:
                return
            file_path = extract_and_validate_archive_path(member.name, self.temp_dir)
            parent = os.path.dirname(file_path)
            if not os.path.exists(parent):
                try:
                    os.mkdir(parent, 0o755)
                except OSError as err:
                    raise InternalError(f"mkdir: {err}") from err
            try:
                out = open(file_path, "wb")
            except OSError as err:
                raise InternalError(f"create: {err}") from err
            with out:
                try:
                    source = tar.extractfile(member)
                    if source is not None:
                        shutil.copyfileobj(source, out)
                except _ARCHIVE_ERRORS as err:
                    raise TarballCorruptedError(f"copy: {err}") from err
            prefix = os.path.normpath(self.temp_dir) + os.sep
            self.files.append(file_path.removeprefix(prefix))
        elif member.issym():
            return
        else:
            logger.info("Unknown file type %s: '%s'", member.name, member.type.decode(errors="replace"))

    def list_files(self, predicate: Callable[[str], bool]) -> list[str]:
        """Return the unpacked files for which ``predicate`` is true."""
        return [name for name in self.files if predicate(name)]

    def get_file_content(self, filename: str) -> bytes:
        """Return the content of an unpacked file."""
        try:
            with open(os.path.join(self.temp_dir, filename), "rb") as handle:
                return handle.read()
        except OSError as err:
            raise InternalError(f"read file: {err}") from err

    def cleanup(self) -> None:
        """Remove the temporary directory and forget the unpacked files."""
        if self.temp_dir:
            try:
                shutil.rmtree(self.temp_dir)
            except FileNotFoundError:
                pass
            except OSError as err:
                raise InternalError(f"remove: {err}") from err
        self.files = []