"""
S3 Bucket creation for the CDK stack.

Creates:
- Media bucket for event images, profile photos, videos and thumbnails
"""

from typing import Callable, Sequence

from aws_cdk import RemovalPolicy
from aws_cdk import aws_s3 as s3
from constructs import Construct

DEFAULT_ALLOWED_ORIGINS = ("http://localhost:3000",)


def create_media_bucket(
    stack: Construct,
    rn: Callable[[str], str],
    allowed_origins: Sequence[str] = DEFAULT_ALLOWED_ORIGINS,
) -> s3.Bucket:
    """Create the media bucket.

    Browsers upload straight to the bucket with presigned PUT URLs and
    multipart part URLs, so CORS must allow PUT and expose the ETag header
    the client sends back when completing a multipart upload.

    Args:
        stack: CDK Construct (usually the Stack instance)
        rn: helper function to create resource names (rn(name: str) -> str)
        allowed_origins: Frontend origins allowed to upload

    Returns:
        The media bucket
    """
    return s3.Bucket(
        stack,
        "Media",
        bucket_name=rn("cachao-media"),
        versioned=False,
        encryption=s3.BucketEncryption.S3_MANAGED,
        block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
        removal_policy=RemovalPolicy.RETAIN,
        cors=[
            s3.CorsRule(
                allowed_methods=[s3.HttpMethods.GET, s3.HttpMethods.PUT, s3.HttpMethods.HEAD],
                allowed_origins=list(allowed_origins),
                allowed_headers=["*"],
                exposed_headers=["ETag"],
                max_age=3000,
            )
        ],
    )
