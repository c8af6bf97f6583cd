"""EventBridge wiring for Stripe payment events.

Stripe delivers events to a partner event bus named
``aws.partner/stripe.com/<destination id>``. The rule forwards the Checkout
Session events the payments handler acts on.
"""

from typing import Any

from aws_cdk import Duration
from aws_cdk import aws_events as events
from aws_cdk import aws_events_targets as targets
from aws_cdk import aws_lambda as lambda_
from constructs import Construct

STRIPE_DETAIL_TYPES = [
    "checkout.session.completed",
    "checkout.session.expired",
    "checkout.session.async_payment_failed",
]


def create_stripe_event_rule(
    scope: Construct,
    rn: Any,  # Resource naming function
    event_bus_name: str,
    stripe_events_fn: lambda_.IFunction,
) -> events.Rule:
    """Route Stripe partner events to the payments Lambda.

    Args:
        scope: CDK construct scope
        rn: Resource naming function (name -> formatted name)
        event_bus_name: Stripe partner event bus name
        stripe_events_fn: Function running stripe_payments.event_bridge_handler

    Returns:
        The EventBridge rule
    """
    event_bus = events.EventBus.from_event_bus_name(scope, "StripeEventBus", event_bus_name)

    rule = events.Rule(
        scope,
        "StripePaymentEvents",
        rule_name=rn("cachao-stripe-payments"),
        event_bus=event_bus,
        event_pattern=events.EventPattern(
            source=events.Match.prefix("aws.partner/stripe.com"),
            detail_type=STRIPE_DETAIL_TYPES,
        ),
    )
    rule.add_target(
        targets.LambdaFunction(
            stripe_events_fn,
            retry_attempts=4,
            max_event_age=Duration.hours(2),
        )
    )
    return rule
