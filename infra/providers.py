import pulumi
import pulumi_aws as aws

from infra.config import KafkaProgramConfig


def create_aws_provider(config: KafkaProgramConfig) -> aws.Provider:
    """Create the AWS provider for the target region with default tags."""

    default_tags = {
        "ManagedBy": "Pulumi",
        "Environment": config.environment,
        "Stack": pulumi.get_stack(),
    }

    all_tags = {**default_tags, **config.tags}

    return aws.Provider(
        "msk-aws",
        region=config.aws_region,
        default_tags=aws.ProviderDefaultTagsArgs(
            tags=all_tags,
        ),
    )
