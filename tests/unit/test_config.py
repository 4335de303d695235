"""
Unit tests for MutexConfig and function name validation.
"""

from __future__ import annotations

import pytest

from xactlock import DEFAULT_LOCK_FUNCTION, LockMode, MutexConfig, validate_function_name


class TestMutexConfigDefaults:
    """Tests for MutexConfig default values."""

    def test_defaults(self) -> None:
        """Defaults are exclusive mode, default function, lenient nesting."""
        config = MutexConfig()

        assert config.mode is LockMode.EXCLUSIVE
        assert config.function_name == DEFAULT_LOCK_FUNCTION
        assert config.strict_nesting is False
        assert config.holder_id is None
        assert config.shared is False

    def test_shared_mode(self) -> None:
        """Shared mode sets the shared flag."""
        config = MutexConfig(mode=LockMode.SHARED)

        assert config.shared is True

    def test_config_is_frozen(self) -> None:
        """MutexConfig is immutable."""
        config = MutexConfig()

        with pytest.raises(AttributeError):
            config.mode = LockMode.SHARED  # type: ignore[misc]


class TestMutexConfigValidation:
    """Tests for MutexConfig.__post_init__ validation."""

    def test_mode_must_be_lock_mode(self) -> None:
        """Plain strings are not accepted as mode."""
        with pytest.raises(ValueError, match="mode must be a LockMode"):
            MutexConfig(mode="shared")  # type: ignore[arg-type]

    def test_invalid_function_name(self) -> None:
        """Function names that are not identifiers are rejected."""
        with pytest.raises(ValueError, match="function_name"):
            MutexConfig(function_name="lock(); DROP TABLE users; --")

    def test_schema_qualified_function_name(self) -> None:
        """Schema-qualified function names are accepted."""
        config = MutexConfig(function_name="locking.try_lock")

        assert config.function_name == "locking.try_lock"

    def test_empty_holder_id(self) -> None:
        """An empty holder_id is rejected."""
        with pytest.raises(ValueError, match="holder_id"):
            MutexConfig(holder_id="")

    def test_holder_id(self) -> None:
        """A holder_id is kept."""
        assert MutexConfig(holder_id="worker-1").holder_id == "worker-1"


class TestValidateFunctionName:
    """Tests for validate_function_name()."""

    @pytest.mark.parametrize(
        "name",
        [
            "try_advisory_xact_lock_timeout",
            "_private",
            "public.try_lock",
            "Lock2",
        ],
    )
    def test_valid_names(self, name: str) -> None:
        """Plain and schema-qualified identifiers pass through unchanged."""
        assert validate_function_name(name) == name

    @pytest.mark.parametrize(
        "name",
        [
            "",
            "1lock",
            "a.b.c",
            "lock-fn",
            "lock fn",
            '"quoted"',
            "fn()",
        ],
    )
    def test_invalid_names(self, name: str) -> None:
        """Anything but plain identifiers is rejected."""
        with pytest.raises(ValueError):
            validate_function_name(name)

    def test_identifier_length_limit(self) -> None:
        """Identifier parts longer than 63 characters are rejected."""
        validate_function_name("f" * 63)

        with pytest.raises(ValueError, match="at most 63"):
            validate_function_name("f" * 64)
        with pytest.raises(ValueError, match="at most 63"):
            validate_function_name("public." + "f" * 64)
