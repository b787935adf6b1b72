"""Basisklasse für Datenübertragungsobjekte (DTO → Domänenobjekt)."""

import logging
from typing import Generic, Iterable, Optional, TypeVar

from pydantic import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DTOValidationError(Exception):
    """Ein DTO ist ungültig und kann nicht umgewandelt werden."""

    def __init__(self, errors: list[str], dto_type: Optional[str] = None) -> None:
        self.errors = list(errors)
        self.dto_type = dto_type
        suffix = f" für {dto_type}" if dto_type else ""
        super().__init__(f"DTOValidationError{suffix}: {', '.join(self.errors)}")


class BaseDTO(Generic[T]):
    """Gemeinsame Schnittstelle: validieren, dann umwandeln.

    Unterklassen implementieren validation_errors() und _build().
    """

    def validation_errors(self) -> list[str]:
        raise NotImplementedError

    def _build(self) -> T:
        raise NotImplementedError

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors()

    def to_entity(self) -> T:
        errors = self.validation_errors()
        if errors:
            raise DTOValidationError(errors, type(self).__name__)
        return self._build()

    def log_validation_errors(self, context: Optional[str] = None) -> None:
        errors = self.validation_errors()
        if not errors:
            return
        prefix = f"[{context}] " if context else ""
        logger.warning(f"{prefix}{type(self).__name__} ungültig: {'; '.join(errors)}")

    def to_entity_or_none(self, log_errors: bool = True,
                          context: Optional[str] = None) -> Optional[T]:
        if not self.is_valid:
            if log_errors:
                self.log_validation_errors(context)
            return None
        return self._build()


def dtos_to_entities(dtos: Iterable[BaseDTO[T]], context: Optional[str] = None,
                     log_errors: bool = True) -> list[T]:
    """Wandelt alle gültigen DTOs um; ungültige werden übersprungen."""
    entities: list[T] = []
    for i, dto in enumerate(dtos):
        label = f"{context or 'DTO'}[{i}]"
        if not dto.is_valid:
            if log_errors:
                dto.log_validation_errors(label)
            continue
        try:
            entities.append(dto._build())
        except ValidationError as e:
            if log_errors:
                logger.warning(f"[{label}] {type(dto).__name__} nicht umwandelbar: "
                               f"{e.error_count()} Fehler ({e.errors()[0]['msg']})")
    return entities
