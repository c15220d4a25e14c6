"""
Example: Validating orders with fluentcheck

This example walks through the main features: fluent property rules,
nested and collection validators, rule sets, grouped conditions,
async checks with cancellation, and tracing.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from fluentcheck import (
    CascadeMode,
    LoggingHook,
    OperationCancelledError,
    PrintHook,
    TraceConfig,
    ValidationError,
    Validator,
    check_args,
    use_tracing,
)

# =============================================================================
# Domain model
# =============================================================================


@dataclass
class Address:
    line1: str = ""
    postcode: str = ""
    country: str = "GB"


@dataclass
class OrderLine:
    sku: str = ""
    quantity: int = 0
    unit_price: float = 0.0


@dataclass
class Order:
    reference: str = ""
    customer_email: str | None = None
    is_business: bool = False
    vat_number: str = ""
    address: Address | None = None
    lines: list[OrderLine] = field(default_factory=list)
    coupon: str = ""


# =============================================================================
# 1. Reusable checks
# =============================================================================


@check_args(error="'{property_name}' must be a multiple of {step}.")
def multiple_of(value, step):
    return value % step == 0


KNOWN_COUPONS = {"WELCOME10", "SPRING"}


async def coupon_exists(code):
    """Pretend to look the coupon up in a remote service."""
    await asyncio.sleep(0.01)
    return code in KNOWN_COUPONS


# =============================================================================
# 2. Validators
# =============================================================================


class AddressValidator(Validator[Address]):
    def rules(self):
        self.rule_for("line1").not_empty()
        self.rule_for("postcode").not_empty().length(5, 8)


class OrderLineValidator(Validator[OrderLine]):
    def rules(self):
        self.rule_for("sku").not_empty().matches(r"^[A-Z]{3}-\d+$")
        self.rule_for("quantity").greater_than(0).apply(multiple_of(1))
        self.rule_for("unit_price").greater_than_or_equal(0)


class OrderValidator(Validator[Order]):
    def rules(self):
        self.rule_for("reference").cascade(
            CascadeMode.STOP_ON_FIRST_FAILURE
        ).not_empty().min_length(6)
        self.rule_for("customer_email").not_null().matches(r"@").with_message(
            "Please provide a valid e-mail address."
        )
        self.rule_for("address").not_null().set_validator(AddressValidator())
        self.rule_for_each("lines").set_validator(OrderLineValidator())

        with self.when(lambda o: o.is_business):
            self.rule_for("vat_number").not_empty().with_error_code("VAT_REQUIRED")

        with self.rule_set("checkout"):
            self.rule_for("lines").not_empty().with_message(
                "An order needs at least one line."
            )
            self.rule_for("coupon").must_async(
                coupon_exists, "Coupon '{property_value}' does not exist."
            ).unless(lambda o: not o.coupon)


# =============================================================================
# 3. Running it
# =============================================================================


def print_result(label, result):
    print(f"  {label}: {'valid' if result else 'INVALID'}")
    for failure in result.errors:
        print(f"    - {failure.property_name}: {failure.error_message}")


if __name__ == "__main__":
    validator = OrderValidator()

    good = Order(
        reference="ORD-0001",
        customer_email="ann@example.com",
        address=Address("1 High Street", "AB1 2CD"),
        lines=[OrderLine("ABC-1", 2, 9.99)],
        coupon="SPRING",
    )
    bad = Order(
        reference="X",
        customer_email="nope",
        is_business=True,
        address=Address("", "1"),
        lines=[OrderLine("abc", 0, -1.0)],
        coupon="BOGUS",
    )

    # --- 1. Default rules ---
    print("=== 1. Default Rules ===\n")
    print_result("good order", validator.validate(good))
    print_result("bad order", validator.validate(bad))

    # --- 2. Selecting properties ---
    print("\n=== 2. Only 'address.postcode' and 'lines.sku' ===\n")
    print_result(
        "bad order",
        validator.validate(bad, properties=["address.postcode", "lines.sku"]),
    )

    # --- 3. Async rule set ---
    print("\n=== 3. Async 'default,checkout' ===\n")
    for label, order in [("good order", good), ("bad order", bad)]:
        result = asyncio.run(validator.validate_async(order, rule_set="default,checkout"))
        print_result(label, result)

    # --- 4. Cancellation ---
    print("\n=== 4. Cancellation ===\n")

    async def cancelled_run():
        cancel = asyncio.Event()
        cancel.set()
        try:
            await validator.validate_async(good, cancel, rule_set="*")
        except OperationCancelledError as e:
            print(f"  cancelled: {e}")

    asyncio.run(cancelled_run())

    # --- 5. Raising ---
    print("\n=== 5. validate_and_raise ===\n")
    try:
        validator.validate_and_raise(bad)
    except ValidationError as e:
        print(f"  {e}")

    # --- 6. Tracing ---
    print("\n=== 6. Tracing (validator and rules only) ===\n")
    with use_tracing(PrintHook(), TraceConfig(max_depth=1)):
        validator.validate(good)

    logging.basicConfig(level=logging.DEBUG, format="  %(name)s %(message)s")
    print("\n=== 7. Logging hook (checks only) ===\n")
    with use_tracing(LoggingHook(), TraceConfig(include_leaf_only=True)):
        validator.validate(bad, properties=["reference"])
