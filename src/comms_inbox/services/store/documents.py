"""
Document Decoding for the Store Implementations.

One unreadable document must not take a whole listing down with it: list
operations skip and log documents that do not parse, while single-document
reads report them as a StoreReadFailure.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from ...core.logging import get_logger
from ..inbox.errors import MalformedPost, StoreReadFailure

logger = get_logger(__name__)

T = TypeVar("T")

# json.JSONDecodeError is a ValueError; AttributeError covers non-object JSON
DOCUMENT_ERRORS = (MalformedPost, ValueError, TypeError, AttributeError)


def decode_all(operation: str, documents: Iterable[Any], parse: Callable[[Any], T]) -> list[T]:
    """
    Parse every document, dropping the ones that do not parse.

    Args:
        operation: Store operation name for the log line
        documents: Raw documents (dicts or JSON text)
        parse: Converter from one raw document to a model

    Returns:
        The models that parsed, in input order
    """
    parsed: list[T] = []
    for document in documents:
        try:
            parsed.append(parse(document))
        except DOCUMENT_ERRORS as e:
            logger.warning("%s: skipping unreadable document: %s", operation, e)
    return parsed


def decode_one(operation: str, document: Any, parse: Callable[[Any], T]) -> T:
    """
    Parse a single document.

    Raises:
        StoreReadFailure: If the document does not parse
    """
    try:
        return parse(document)
    except DOCUMENT_ERRORS as e:
        raise StoreReadFailure(operation, f"unreadable document: {e}") from e
