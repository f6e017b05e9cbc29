"""
Checks applied where outside input enters the ledger.

Two kinds of input are checked here:

- Collaborators handed to OrderRepository are checked against their
  @runtime_checkable Protocols when the repository is built, so a
  miswired store fails at startup rather than on the first write.
- Caller payloads (dicts or models) are parsed into the Pydantic request
  models, and Pydantic's errors are reshaped into OrderValidationError.
"""

import logging
from typing import Any, Dict, Mapping, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from ledger.exceptions import OrderValidationError

logger = logging.getLogger(__name__)

P = TypeVar("P")
M = TypeVar("M", bound=BaseModel)


class RepositoryValidationError(Exception):
    """A collaborator does not provide the methods its Protocol requires."""


def validate_repository_protocol(
    repository: object, protocol: Type[P]
) -> None:
    """
    Raise RepositoryValidationError unless ``repository`` satisfies
    ``protocol``.

    Example:
        >>> from ledger.repos.memory.store import MemoryPersistentStore
        >>> from ledger.repositories import PersistentStore
        >>> validate_repository_protocol(
        ...     MemoryPersistentStore(), PersistentStore
        ... )
    """
    implementation = type(repository).__name__
    if isinstance(repository, protocol):
        logger.debug(
            "Collaborator satisfies protocol",
            extra={
                "implementation": implementation,
                "protocol": protocol.__name__,
            },
        )
        return

    logger.error(
        "Collaborator does not satisfy protocol",
        extra={"implementation": implementation, "protocol": protocol.__name__},
    )
    raise RepositoryValidationError(
        f"{implementation} is not a {protocol.__name__}: one or more "
        "required methods are missing"
    )


def ensure_repository_protocol(repository: object, protocol: Type[P]) -> P:
    """Validate ``repository`` and hand it back typed as ``protocol``."""
    validate_repository_protocol(repository, protocol)
    return repository  # type: ignore[return-value]


def ensure_persistent_store(store: object) -> Any:
    """Ensure an object satisfies the PersistentStore protocol"""
    from ledger.repositories import PersistentStore

    return ensure_repository_protocol(store, PersistentStore)  # type: ignore[type-abstract]


def ensure_product_catalog(catalog: object) -> Any:
    """Ensure an object satisfies the ProductCatalog protocol"""
    from ledger.repositories import ProductCatalog

    return ensure_repository_protocol(catalog, ProductCatalog)  # type: ignore[type-abstract]


def field_errors(error: ValidationError) -> Dict[str, str]:
    """Flatten a Pydantic ValidationError into {field: message}.

    Only the first message per field is kept, which is what a form shows.
    """
    errors: Dict[str, str] = {}
    for detail in error.errors():
        location = detail.get("loc") or ("__root__",)
        field = ".".join(str(part) for part in location)
        message = detail.get("msg", "Invalid value")
        # Pydantic prefixes messages raised from validators.
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        errors.setdefault(field, message)
    return errors


def parse_request(
    data: Union[M, Mapping[str, Any]], model_class: Type[M]
) -> M:
    """
    Validate caller input against a request model.

    Args:
        data: A model instance (returned as is) or a mapping of raw values
        model_class: Pydantic model class to validate against

    Returns:
        Validated model instance

    Raises:
        OrderValidationError: With per-field messages if validation fails
    """
    if isinstance(data, model_class):
        return data

    try:
        return model_class.model_validate(dict(data))
    except ValidationError as e:
        errors = field_errors(e)
        logger.info(
            "Rejected invalid input",
            extra={
                "model_class": model_class.__name__,
                "invalid_fields": sorted(errors),
            },
        )
        raise OrderValidationError(errors) from e
    except (TypeError, ValueError) as e:
        raise OrderValidationError({"__root__": str(e)}) from e
