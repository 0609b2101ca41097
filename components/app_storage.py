from aws_cdk import aws_s3 as s3, RemovalPolicy, Duration, Tags
from constructs import Construct


class AppStorage(Construct):
    """
    Private S3 bucket for BookStack uploads and attachments
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        removal_policy: RemovalPolicy = RemovalPolicy.RETAIN,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        disposable = removal_policy == RemovalPolicy.DESTROY

        self.bucket = s3.Bucket(
            self,
            "Bucket",
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            encryption=s3.BucketEncryption.S3_MANAGED,
            enforce_ssl=True,
            versioned=not disposable,
            removal_policy=removal_policy,
            auto_delete_objects=disposable,
            lifecycle_rules=[
                s3.LifecycleRule(
                    id="ExpireOldVersions",
                    enabled=True,
                    noncurrent_version_expiration=Duration.days(90),
                    abort_incomplete_multipart_upload_after=Duration.days(7),
                )
            ],
        )

        Tags.of(self).add("Component", "Storage")
