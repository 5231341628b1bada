import logging
from datetime import datetime
from typing import Optional

from google.protobuf.message import Message

from protoguard.config import Config
from protoguard.constraints import ConstraintResolver
from protoguard.errors import ProtoguardError
from protoguard.evaluator import MessageEvaluator
from protoguard.expression import ProgramCache
from protoguard.result import ValidationResult

logger = logging.getLogger(__name__)


class Validator:
    """Validates protobuf messages against the constraints declared on their
    types.

    A validator owns the caches of resolved constraints and compiled
    expressions; it is safe to share between threads, and applications
    usually keep one for their lifetime.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        resolver: Optional[ConstraintResolver] = None,
        programs: Optional[ProgramCache] = None,
    ):
        """Initialize a validator.

        Args:
            config: Evaluation options. Defaults to Config().
            resolver: Constraint resolver to use. A new one, compiling into
                `programs`, is created if omitted.
            programs: Cache of compiled expressions, for sharing compiled
                expressions between validators. Ignored if a resolver is
                provided.
        """
        self.config = config if config is not None else Config()
        self.resolver = resolver if resolver is not None else ConstraintResolver(programs)
        self.evaluator = MessageEvaluator(self.resolver, self.config.max_depth)

    def validate(
        self,
        message: Message,
        fail_fast: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """Validate a message.

        Args:
            message: The message to validate.
            fail_fast: Stop at the first violation. Defaults to the
                fail_fast option of the validator configuration.
            now: Time bound to the `now` variable of expressions, defaults
                to the current UTC time.

        Returns:
            ValidationResult: The violations found. The result is valid if
                there are none.

        Raises:
            SchemaError: If constraints declared on the message type are
                malformed.
            CompilationError: If an expression does not compile.
            RecursionError: If the message nests deeper than max_depth.
            RuntimeEvaluationError: If an expression fails to evaluate.
        """
        if fail_fast is None:
            fail_fast = self.config.fail_fast
        compiled = self.resolver.resolve(message.DESCRIPTOR)
        violations = self.evaluator.evaluate(message, compiled, fail_fast, now)
        logger.debug(
            "validated %s: %d violation(s)",
            message.DESCRIPTOR.full_name,
            len(violations),
        )
        return ValidationResult(violations)

    def check(
        self,
        message: Message,
        fail_fast: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """Validate a message, reporting errors in the result instead of
        raising them.

        The status of the returned result tells whether the message was
        evaluated (VALID or INVALID) or which error prevented it.
        """
        try:
            return self.validate(message, fail_fast, now)
        except ProtoguardError as e:
            logger.debug(
                "validation of %s failed: %s", message.DESCRIPTOR.full_name, e
            )
            return ValidationResult.from_exception(e)


DEFAULT_VALIDATOR: Optional[Validator] = None
"""The validator used by the module-level validate and check functions.

It is configured from the PROTOGUARD_* environment variables when first
used.
"""


def default_validator() -> Validator:
    """Returns the default validator, initializing it on first use.

    Raises:
        ValueError: If a PROTOGUARD_* environment variable holds an invalid
            value.
    """
    global DEFAULT_VALIDATOR
    if DEFAULT_VALIDATOR is None:
        DEFAULT_VALIDATOR = Validator(Config.from_environment())
    return DEFAULT_VALIDATOR


def set_default_validator(validator: Optional[Validator]):
    """Replaces the default validator. Passing None resets it, so it is
    configured from the environment again on next use."""
    global DEFAULT_VALIDATOR
    DEFAULT_VALIDATOR = validator
