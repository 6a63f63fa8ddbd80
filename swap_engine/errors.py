from __future__ import annotations


class SwapError(Exception):
    """Base for every failure surfaced by the swap pipeline."""

    kind = "swap_failed"
    indeterminate = False
    signature: str | None = None
    bundle_id: str | None = None


class QuoteUnavailable(SwapError):
    kind = "quote_unavailable"


class InstructionAssemblyError(SwapError):
    kind = "instruction_assembly_failed"


class InstructionDecodeError(SwapError):
    kind = "instruction_decode_failed"

    def __init__(self, field: str, detail: str):
        super().__init__(f"Malformed instruction field '{field}': {detail}")
        self.field = field


class TransactionCompositionError(SwapError):
    kind = "transaction_composition_failed"


class AmountConversionError(SwapError):
    kind = "amount_conversion_failed"


class SettlementFailed(SwapError):
    kind = "settlement_failed"

    def __init__(self, reason: str, signature: str | None = None):
        super().__init__(reason)
        self.signature = signature


class BundleFailed(SwapError):
    kind = "bundle_failed"

    def __init__(self, reason: str, bundle_id: str | None = None):
        super().__init__(reason)
        self.bundle_id = bundle_id


class SettlementIndeterminate(SettlementFailed):
    """The transaction was broadcast but its confirmation could not be read."""

    kind = "settlement_outcome_indeterminate"
    indeterminate = True


class BundleSubmitIndeterminate(BundleFailed):
    """The relay connection broke during sendBundle; it may have accepted the bundle."""

    kind = "bundle_outcome_indeterminate"
    indeterminate = True


class BundlePollTimeout(SwapError):
    """The relay never reported a terminal status; the bundle may still land."""

    kind = "bundle_outcome_indeterminate"
    indeterminate = True

    def __init__(self, bundle_id: str, timeout_sec: float):
        super().__init__(
            f"Bundle {bundle_id} polling timed out after {timeout_sec:g}s; outcome is "
            "indeterminate, verify the wallet state on-chain before retrying"
        )
        self.bundle_id = bundle_id
        self.timeout_sec = timeout_sec


class InsufficientFunds(SwapError):
    kind = "insufficient_funds"


class InvalidQuote(SwapError):
    kind = "invalid_quote"


class SwapFailed(SwapError):
    kind = "swap_failed"


class TokenResolutionError(SwapError):
    kind = "token_resolution_failed"
