import pulumi
import pulumi_aws as aws
import json
import logging
from . import constants
from .models import (DesiredConfig, ProviderReference, custom_policy_name,
                     custom_policy_path, strip_scheme)
from .trust_policy import build_trust_policy

logger = logging.getLogger(__name__)


def _define_oidc_provider(config: DesiredConfig, thumbprint: str | None, tags: dict,
                          opts: pulumi.ResourceOptions | None) -> tuple[pulumi.Output, pulumi.Output]:
    """Registers the GitHub OIDC provider, or looks up the one that already exists."""
    if config.create_oidc_provider:
        if not thumbprint:
            raise ValueError("A certificate thumbprint is required to create the OIDC provider")
        provider = aws.iam.OpenIdConnectProvider(f"{config.role_name}-oidc-provider",
                                                 url=constants.GITHUB_OIDC_ISSUER_URL,
                                                 client_id_lists=[constants.DEFAULT_AUDIENCE],
                                                 thumbprint_lists=[thumbprint],
                                                 tags=tags,
                                                 opts=opts)
        logger.info(f"Defined aws.iam.OpenIdConnectProvider for {constants.GITHUB_OIDC_ISSUER_URL}")
        return provider.arn, provider.url

    invoke_opts = pulumi.InvokeOptions(provider=opts.provider) if opts and opts.provider else None
    existing = aws.iam.get_open_id_connect_provider(url=constants.GITHUB_OIDC_ISSUER_URL, opts=invoke_opts)
    logger.info(f"Using existing OIDC provider: {existing.arn}")
    return pulumi.Output.from_input(existing.arn), pulumi.Output.from_input(existing.url)


def _trust_policy_output(provider_arn: pulumi.Output, provider_url: pulumi.Output,
                         repositories) -> pulumi.Output:
    repositories = list(repositories)
    return pulumi.Output.all(provider_arn, provider_url).apply(
        lambda args: json.dumps(build_trust_policy(
            ProviderReference(arn=args[0], url=strip_scheme(args[1])), repositories
        ))
    )


def _define_custom_policies(config: DesiredConfig, role: aws.iam.Role, tags: dict,
                            opts: pulumi.ResourceOptions | None) -> dict[str, aws.iam.Policy]:
    policies = {}
    for name, document in config.custom_policies.items():
        policy = aws.iam.Policy(f"{config.role_name}-policy-{name}",
                                name=custom_policy_name(config.role_name, name),
                                path=custom_policy_path(config.role_name),
                                policy=document,
                                tags=tags,
                                opts=opts)
        aws.iam.RolePolicyAttachment(f"{config.role_name}-custom-{name}",
                                     role=role.name,
                                     policy_arn=policy.arn,
                                     opts=opts)
        policies[name] = policy
        logger.debug(f"Attaching custom policy '{name}' to role {config.role_name}")
    return policies


def _attach_managed_policies(config: DesiredConfig, role: aws.iam.Role,
                             opts: pulumi.ResourceOptions | None) -> None:
    for policy_arn in config.managed_policy_arns:
        # Keyed by policy name so reordering the list does not replace attachments
        aws.iam.RolePolicyAttachment(f"{config.role_name}-managed-{policy_arn.rsplit('/', 1)[-1]}",
                                     role=role.name,
                                     policy_arn=policy_arn,
                                     opts=opts)
        logger.debug(f"Attaching managed policy {policy_arn} to role {config.role_name}")


def _safe_export(key: str, value) -> None:
    """Safely export a value, only if we're in a valid Pulumi stack context."""
    try:
        pulumi.export(key, value)
        logger.debug(f"Exported: {key}")
    except Exception as e:
        # This happens when not running in a Pulumi stack context (e.g., CLI validation)
        logger.debug(f"Skipping export '{key}' - not in Pulumi stack context: {e}")


def define_trust_stack(config: DesiredConfig, thumbprint: str | None = None,
                       pulumi_provider: aws.Provider = None) -> aws.iam.Role:
    """
    Declares the provider, role and policy attachments for a DesiredConfig as
    Pulumi resources, exporting the same outputs as a reconciler run.
    """
    logger.info(f"--- Defining IAM resources for role: {config.role_name} ---")
    tags = config.resource_tags()
    opts = pulumi.ResourceOptions(provider=pulumi_provider) if pulumi_provider else None

    provider_arn, provider_url = _define_oidc_provider(config, thumbprint, tags, opts)

    role = aws.iam.Role(f"{config.role_name}-role",
                        name=config.role_name,
                        description=config.role_description,
                        assume_role_policy=_trust_policy_output(provider_arn, provider_url,
                                                                config.github_repositories),
                        max_session_duration=config.max_session_duration,
                        tags=tags,
                        opts=opts)
    logger.info(f"Defined aws.iam.Role: {config.role_name}")

    policies = _define_custom_policies(config, role, tags, opts)
    _attach_managed_policies(config, role, opts)

    _safe_export("oidc_provider_arn", provider_arn)
    _safe_export("oidc_provider_url", provider_url)
    _safe_export("role_name", role.name)
    _safe_export("role_arn", role.arn)
    _safe_export("role_id", role.unique_id)
    _safe_export("policy_names", list(policies))
    _safe_export("policy_arns", [policy.arn for policy in policies.values()])
    _safe_export("github_repositories", list(config.github_repositories))

    logger.info(f"--- Successfully defined all IAM resources for role: {config.role_name} ---")
    return role
