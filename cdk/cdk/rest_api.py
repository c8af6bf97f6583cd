"""REST API (API Gateway) for the Cachao stack.

Every route is a Lambda proxy integration. Routes whose handler requires a
signed-in caller sit behind the Cognito authorizer, which puts the token
claims in ``requestContext.authorizer.claims``. Routes where identity is
optional (guest checkout, video upload URLs) stay open and the handler reads
the bearer token itself.
"""

from typing import Any, NamedTuple, Sequence

from aws_cdk import CfnOutput
from aws_cdk import aws_apigateway as apigateway
from aws_cdk import aws_cognito as cognito
from aws_cdk import aws_lambda as lambda_
from constructs import Construct


class Route(NamedTuple):
    function: str
    method: str
    path: str
    authorized: bool = False


EVENT = "/events/{event_id}"
TICKET = EVENT + "/tickets/{ticket_id}"
STAFF = EVENT + "/staff/{staff_id}"
ACCOMMODATION = EVENT + "/accommodations/{accommodation_id}"

ROUTES: tuple[Route, ...] = (
    # Events
    Route("events_fn", "GET", "/events"),
    Route("events_fn", "POST", "/events", True),
    Route("events_fn", "POST", "/events/image-upload-url", True),
    Route("events_fn", "GET", EVENT),
    Route("events_fn", "PUT", EVENT, True),
    Route("events_fn", "PATCH", EVENT, True),
    Route("events_fn", "DELETE", EVENT, True),
    # Tickets, discounts and orders
    Route("tickets_fn", "GET", EVENT + "/tickets"),
    Route("tickets_fn", "POST", EVENT + "/tickets", True),
    Route("tickets_fn", "PUT", TICKET, True),
    Route("tickets_fn", "DELETE", TICKET, True),
    Route("tickets_fn", "POST", TICKET + "/image-upload-url", True),
    Route("tickets_fn", "GET", TICKET + "/discounts"),
    Route("tickets_fn", "POST", TICKET + "/discounts", True),
    Route("tickets_fn", "PUT", TICKET + "/discounts/{discount_id}", True),
    Route("tickets_fn", "DELETE", TICKET + "/discounts/{discount_id}", True),
    Route("tickets_fn", "GET", EVENT + "/discount-codes"),
    Route("tickets_fn", "POST", EVENT + "/discount-codes", True),
    Route("tickets_fn", "PUT", EVENT + "/discount-codes/{code_id}", True),
    Route("tickets_fn", "DELETE", EVENT + "/discount-codes/{code_id}", True),
    Route("tickets_fn", "GET", EVENT + "/ticket-orders", True),
    Route("tickets_fn", "PATCH", EVENT + "/ticket-orders/{order_id}/validate", True),
    # Stripe
    Route("stripe_payments_fn", "POST", TICKET + "/checkout"),
    Route("stripe_payments_fn", "POST", "/webhooks/stripe"),
    # Staff, flights and accommodations
    Route("staff_fn", "GET", EVENT + "/staff"),
    Route("staff_fn", "POST", EVENT + "/staff", True),
    Route("staff_fn", "PUT", STAFF, True),
    Route("staff_fn", "DELETE", STAFF, True),
    Route("staff_fn", "POST", "/events/staff/image-upload-url", True),
    Route("staff_fn", "GET", "/artists/{artist_id}"),
    Route("staff_fn", "GET", STAFF + "/flights"),
    Route("staff_fn", "POST", STAFF + "/flights", True),
    Route("staff_fn", "PUT", STAFF + "/flights/{flight_id}", True),
    Route("staff_fn", "DELETE", STAFF + "/flights/{flight_id}", True),
    Route("staff_fn", "GET", STAFF + "/accommodations"),
    Route("staff_fn", "GET", EVENT + "/flights"),
    Route("staff_fn", "POST", EVENT + "/flights", True),
    Route("staff_fn", "DELETE", EVENT + "/flights/{flight_id}", True),
    Route("staff_fn", "GET", EVENT + "/accommodations"),
    Route("staff_fn", "POST", EVENT + "/accommodations", True),
    Route("staff_fn", "PUT", ACCOMMODATION, True),
    Route("staff_fn", "DELETE", ACCOMMODATION, True),
    Route("staff_fn", "POST", ACCOMMODATION + "/assign", True),
    Route("staff_fn", "DELETE", ACCOMMODATION + "/assign/{staff_id}", True),
    # Videos and albums
    Route("videos_fn", "POST", "/videos/upload-url"),
    Route("videos_fn", "POST", "/videos/confirm", True),
    Route("videos_fn", "DELETE", "/videos", True),
    Route("videos_fn", "POST", "/videos/multipart/init", True),
    Route("videos_fn", "POST", "/videos/multipart/complete", True),
    Route("videos_fn", "PATCH", "/videos/{video_id}", True),
    Route("videos_fn", "GET", EVENT + "/videos"),
    Route("videos_fn", "GET", EVENT + "/albums"),
    Route("videos_fn", "POST", EVENT + "/albums", True),
    Route("generate_thumbnail_fn", "POST", "/videos/thumbnail", True),
    # Signed-in user
    Route("user_profile_fn", "GET", "/user/profile", True),
    Route("user_profile_fn", "PATCH", "/user/profile", True),
    Route("user_profile_fn", "POST", "/user/profile-photo-upload-url", True),
    Route("user_profile_fn", "GET", "/user/events", True),
    Route("user_profile_fn", "GET", "/user/tickets", True),
    Route("user_profile_fn", "GET", "/user/videos", True),
    Route("public_users_fn", "PATCH", "/user/nickname", True),
    # Public profiles
    Route("public_users_fn", "GET", "/users/check-nickname/{nickname}"),
    Route("public_users_fn", "GET", "/users/{nickname}"),
    Route("public_users_fn", "GET", "/users/{nickname}/videos"),
    # Auth
    Route("auth_fn", "POST", "/auth/login"),
    Route("auth_fn", "POST", "/auth/forgot-password"),
    Route("auth_fn", "POST", "/auth/confirm-forgot-password"),
    Route("auth_fn", "POST", "/auth/resend-verification-code"),
    # Administration (ADMIN group checked by the handlers)
    Route("auth_fn", "POST", "/admin/reset-password", True),
    Route("auth_fn", "POST", "/admin/mark-email-verified", True),
    Route("auth_fn", "GET", "/admin/ticket-orders", True),
    Route("admin_videos_fn", "DELETE", "/admin/delete-all-videos", True),
)


def create_rest_api(
    scope: Construct,
    rn: Any,  # Resource naming function
    functions: dict[str, Any],
    user_pool: cognito.IUserPool,
    allowed_origins: Sequence[str],
    routes: Sequence[Route] = ROUTES,
) -> dict[str, Any]:
    """Create the REST API and wire every route to its Lambda.

    Args:
        scope: CDK construct scope
        rn: Resource naming function (name -> formatted name)
        functions: Lambda functions keyed as returned by create_lambda_functions
        user_pool: User pool backing the Cognito authorizer
        allowed_origins: Frontend origins for CORS preflight
        routes: Route table

    Returns:
        Dictionary containing api and authorizer
    """
    api = apigateway.RestApi(
        scope,
        "RestApi",
        rest_api_name=rn("cachao-api"),
        deploy_options=apigateway.StageOptions(stage_name="Prod"),
        default_cors_preflight_options=apigateway.CorsOptions(
            allow_origins=list(allowed_origins),
            allow_methods=apigateway.Cors.ALL_METHODS,
            allow_headers=["Content-Type", "Authorization", "Stripe-Signature", "X-Correlation-Id"],
        ),
    )

    authorizer = apigateway.CognitoUserPoolsAuthorizer(
        scope,
        "CognitoAuthorizer",
        cognito_user_pools=[user_pool],
        authorizer_name=rn("cachao-authorizer"),
    )

    integrations: dict[str, apigateway.LambdaIntegration] = {}
    for route in routes:
        if route.function not in integrations:
            fn: lambda_.IFunction = functions[route.function]
            integrations[route.function] = apigateway.LambdaIntegration(fn, proxy=True)

        resource = api.root.resource_for_path(route.path)
        if route.authorized:
            resource.add_method(
                route.method,
                integrations[route.function],
                authorizer=authorizer,
                authorization_type=apigateway.AuthorizationType.COGNITO,
            )
        else:
            resource.add_method(route.method, integrations[route.function])

    CfnOutput(scope, "ApiUrl", value=api.url, description="REST API base URL")

    return {"api": api, "authorizer": authorizer}
