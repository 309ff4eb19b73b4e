"""
Contract Validators — JSON Schema контракты фонда

Внешние payload-ы (обновление политики, конфигурация фонда) проверяются
против JSON Schema (Draft 2020-12) до построения доменных объектов.

Контракты:
- allocation_policy: payload AllocationPolicyStore.update
- fund_config: файл конфигурации FundConfig
"""

import json
from pathlib import Path
from typing import Any, Iterator, Mapping

import jsonschema
from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match

SCHEMA_DIR = Path(__file__).parent / "schema"

ALLOCATION_POLICY = "allocation_policy"
FUND_CONFIG = "fund_config"


class SchemaLoader:
    """
    Чтение и meta-проверка схем из каталога.

    Схема читается с диска один раз, дальше отдаётся из кэша.
    """

    def __init__(self, schema_dir: Path | None = None):
        self.schema_dir = Path(schema_dir) if schema_dir is not None else SCHEMA_DIR
        if not self.schema_dir.is_dir():
            raise RuntimeError(f"Schema directory not found: {self.schema_dir}")
        self._cache: dict[str, dict[str, Any]] = {}

    def load_schema(self, name: str) -> dict[str, Any]:
        """
        Raises:
            FileNotFoundError: Нет файла <name>.json
            ValueError: Файл не является валидной JSON Schema
        """
        cached = self._cache.get(name)
        if cached is not None:
            return cached

        path = self.schema_dir / f"{name}.json"
        if not path.is_file():
            raise FileNotFoundError(f"Schema not found: {path}")
        schema = json.loads(path.read_text(encoding="utf-8"))

        try:
            Draft202012Validator.check_schema(schema)
        except jsonschema.SchemaError as e:
            raise ValueError(f"{path.name} is not a valid Draft 2020-12 schema: {e.message}") from e

        self._cache[name] = schema
        return schema


_LOADER = SchemaLoader()


class ContractValidator:
    """Проверка payload против одной схемы."""

    schema_name: str = ""

    def __init__(self, schema_name: str | None = None, loader: SchemaLoader | None = None):
        self.schema_name = schema_name or self.schema_name
        self.schema = (loader or _LOADER).load_schema(self.schema_name)
        self._validator = Draft202012Validator(self.schema)

    def validate(self, data: Mapping[str, Any]) -> None:
        """
        Raises:
            jsonschema.ValidationError: Первая (наиболее релевантная) ошибка
        """
        error = best_match(self._validator.iter_errors(data))
        if error is not None:
            raise error

    def is_valid(self, data: Mapping[str, Any]) -> bool:
        return self._validator.is_valid(data)

    def iter_errors(self, data: Mapping[str, Any]) -> Iterator[jsonschema.ValidationError]:
        return self._validator.iter_errors(data)


class AllocationPolicyValidator(ContractValidator):
    schema_name = ALLOCATION_POLICY


class FundConfigValidator(ContractValidator):
    schema_name = FUND_CONFIG


_VALIDATORS: dict[str, ContractValidator] = {}


def _validator_for(cls: type[ContractValidator]) -> ContractValidator:
    validator = _VALIDATORS.get(cls.schema_name)
    if validator is None:
        validator = _VALIDATORS[cls.schema_name] = cls()
    return validator


def validate_allocation_policy(data: Mapping[str, Any]) -> None:
    """Проверка payload политики; ValidationError при нарушении контракта."""
    _validator_for(AllocationPolicyValidator).validate(data)


def validate_fund_config(data: Mapping[str, Any]) -> None:
    """Проверка конфигурации фонда; ValidationError при нарушении контракта."""
    _validator_for(FundConfigValidator).validate(data)
