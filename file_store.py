"""
JSON document store backed by a data directory.

Each document is one file. Writes go to a temporary file in the same directory
and are moved into place with a single rename, so readers see either the old
document or the new one, never a partial file. Nothing here locks: two
read-modify-write cycles on the same document race and the last writer wins.
"""

import json
import os
import tempfile

import structlog

from errors import InvalidDocumentName, ReadFailure, WriteFailure

logger = structlog.get_logger()

CART_DOCUMENT = "cart.json"
ORDERS_DOCUMENT = "orders.json"
USERS_DOCUMENT = "users.json"
PRODUCTS_DOCUMENT = "products.json"

# Documents in the data directory that are not menu categories
RESERVED_DOCUMENTS = frozenset(
    [CART_DOCUMENT, ORDERS_DOCUMENT, USERS_DOCUMENT, PRODUCTS_DOCUMENT]
)

MAX_LOG_PREVIEW = 120


class _Missing:
    """Result of reading a document that does not exist."""

    def __bool__(self):
        return False

    def __repr__(self):
        return "MISSING"


MISSING = _Missing()


class FileStore:
    def __init__(self, data_dir: str):
        self.data_dir = data_dir

    def path(self, name: str) -> str:
        if (
            not name
            or name in (".", "..")
            or os.sep in name
            or (os.altsep and os.altsep in name)
        ):
            raise InvalidDocumentName(name)
        return os.path.join(self.data_dir, name)

    def read(self, name: str):
        """
        Load and parse a document.

        Returns MISSING when the file does not exist; any other I/O or parse
        problem raises ReadFailure.
        """
        path = self.path(name)
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = f.read()
        except FileNotFoundError:
            logger.info("document_missing", document=name)
            return MISSING
        except OSError as e:
            logger.error("document_read_failed", document=name, error=str(e))
            raise ReadFailure(name, str(e)) from e

        try:
            value = json.loads(raw)
        except ValueError as e:
            logger.error("document_parse_failed", document=name, error=str(e))
            raise ReadFailure(name, str(e)) from e

        logger.debug("document_read", document=name, size=len(raw))
        return value

    def write(self, name: str, value) -> int:
        """
        Replace a document atomically. Returns the number of bytes written.
        """
        path = self.path(name)
        try:
            data = json.dumps(value, indent=2, ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as e:
            logger.error("document_serialize_failed", document=name, error=str(e))
            raise WriteFailure(name, str(e)) from e

        logger.debug(
            "document_write", document=name, preview=repr(value)[:MAX_LOG_PREVIEW]
        )

        tmp_path = None
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.data_dir, prefix=f".{name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except Exception as e:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except FileNotFoundError:
                    pass
            logger.error("document_write_failed", document=name, error=str(e))
            raise WriteFailure(name, str(e)) from e

        size = len(data.encode("utf-8"))
        logger.info("document_written", document=name, size=size)
        return size

    def list(self, suffix: str = ".json", exclude=RESERVED_DOCUMENTS):
        """Names of documents ending in suffix, with the suffix stripped."""
        try:
            files = os.listdir(self.data_dir)
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error("document_list_failed", error=str(e))
            raise ReadFailure(self.data_dir, str(e)) from e

        names = sorted(
            f[: -len(suffix)]
            for f in files
            if f.endswith(suffix) and f not in exclude and not f.startswith(".")
        )
        logger.debug("documents_listed", count=len(names))
        return names
