#!/usr/bin/env python3
"""
OIDC Trust Reconciler CLI
Keeps a GitHub Actions OIDC provider, IAM role and its policies in AWS in line with a config file
"""

import json
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from oidc_trust_reconciler import __version__, config_loader
from oidc_trust_reconciler.certificates import leaf_thumbprint
from oidc_trust_reconciler.errors import (ConfigError, OidcTrustError, ProviderNotFound,
                                          RemoteOperationError, ValidationError)
from oidc_trust_reconciler.pulumi_manager import PulumiStackManager
from oidc_trust_reconciler.reconciler import Reconciler
from oidc_trust_reconciler.remote_store import Boto3RemoteStore
from oidc_trust_reconciler.validator import validate_config

console = Console()


# Exit codes for CI/CD systems
class ExitCodes:
    SUCCESS = 0
    GENERAL_ERROR = 1
    CONFIG_ERROR = 2
    VALIDATION_ERROR = 3
    AWS_ERROR = 4
    PROVIDER_NOT_FOUND = 5
    PARTIAL_FAILURE = 6


def setup_logging(log_level: str, json_output: bool = False) -> logging.Logger:
    """Configure logging with optional JSON output for CI systems."""
    logger = logging.getLogger()
    logger.handlers.clear()

    if json_output:
        formatter = logging.Formatter(
            '{"timestamp":"%(asctime)s","level":"%(levelname)s","module":"%(name)s","message":"%(message)s"}'
        )
        # Keep stdout clean for the JSON result document
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
    else:
        handler = RichHandler(console=console, show_time=True, show_path=False)

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, log_level.upper()))

    # Suppress verbose library logs
    for noisy in ("botocore", "boto3", "urllib3", "pulumi"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


def validate_config_file(ctx, param, value: str) -> Path:
    """Validate the config file exists."""
    path = Path(value)
    if not path.exists():
        raise click.BadParameter(f"Config file does not exist: {value}")
    if not path.is_file():
        raise click.BadParameter(f"Path is not a file: {value}")
    return path


def _print_json(payload: dict) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@contextmanager
def _exit_on_error(logger: logging.Logger, action: str):
    """Maps the error taxonomy onto exit codes."""
    try:
        yield
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(ExitCodes.CONFIG_ERROR)
    except ValidationError as e:
        logger.error(f"Validation failed with {len(e.failures)} error(s)")
        sys.exit(ExitCodes.VALIDATION_ERROR)
    except ProviderNotFound as e:
        logger.error(f"{e}. Set createOidcProvider to true or register the provider first.")
        sys.exit(ExitCodes.PROVIDER_NOT_FOUND)
    except RemoteOperationError as e:
        logger.error(f"AWS error: {e}")
        sys.exit(ExitCodes.AWS_ERROR)
    except KeyboardInterrupt:
        logger.warning(f"{action} interrupted by user")
        sys.exit(ExitCodes.GENERAL_ERROR)
    except OidcTrustError as e:
        logger.error(f"{action} failed: {e}")
        sys.exit(ExitCodes.GENERAL_ERROR)
    except Exception as e:
        logger.error(f"Unexpected error during {action.lower()}: {e}")
        if logger.level == logging.DEBUG:
            import traceback
            traceback.print_exc()
        sys.exit(ExitCodes.GENERAL_ERROR)


def _build_reconciler(aws_profile: Optional[str], aws_region: Optional[str]) -> Reconciler:
    return Reconciler(Boto3RemoteStore(aws_profile=aws_profile, aws_region=aws_region))


def _operations_table(operations) -> Table:
    table = Table()
    table.add_column("#", style="dim")
    table.add_column("Operation", style="cyan")
    table.add_column("Target", style="green")
    table.add_column("Depends On", style="yellow")
    for index, op in enumerate(operations, start=1):
        table.add_row(str(index), op.kind, op.target, ", ".join(op.depends_on))
    return table


def _outputs_table(outputs: dict) -> Table:
    table = Table()
    table.add_column("Output", style="cyan")
    table.add_column("Value", style="green")
    for key, value in outputs.items():
        table.add_row(key, ", ".join(value) if isinstance(value, list) else str(value))
    return table


config_option = click.option(
    "--config",
    "config_file",
    required=True,
    callback=validate_config_file,
    envvar="OIDC_CONFIG_FILE",
    help="Path to the role configuration JSON file (env: OIDC_CONFIG_FILE)"
)
aws_profile_option = click.option(
    "--aws-profile",
    envvar="AWS_PROFILE",
    help="AWS profile to use (env: AWS_PROFILE)"
)
aws_region_option = click.option(
    "--aws-region",
    envvar="AWS_REGION",
    help="AWS region for the API clients (env: AWS_REGION)"
)
stack_name_option = click.option(
    "--stack-name",
    default="dev",
    envvar="PULUMI_STACK_NAME",
    help="Pulumi stack name (env: PULUMI_STACK_NAME)"
)
backend_url_option = click.option(
    "--backend-url",
    envvar="PULUMI_BACKEND_URL",
    help="Pulumi state backend URL, local file backend by default (env: PULUMI_BACKEND_URL)"
)


@click.group()
@click.version_option(version=__version__, prog_name="oidc-trust-reconciler")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default="INFO",
    envvar="OIDC_LOG_LEVEL",
    help="Set logging level (env: OIDC_LOG_LEVEL)"
)
@click.option(
    "--json-output",
    is_flag=True,
    envvar="OIDC_JSON_OUTPUT",
    help="Output structured JSON for CI/CD (env: OIDC_JSON_OUTPUT)"
)
@click.pass_context
def cli(ctx, log_level: str, json_output: bool):
    """Reconciles AWS IAM OIDC trust for GitHub Actions."""
    ctx.ensure_object(dict)
    ctx.obj["logger"] = setup_logging(log_level, json_output)
    ctx.obj["json_output"] = json_output


@cli.command()
@config_option
@click.pass_context
def validate(ctx, config_file: Path):
    """Validate a role configuration without contacting AWS."""
    logger = ctx.obj["logger"]
    json_output = ctx.obj["json_output"]

    with _exit_on_error(logger, "Validation"):
        config = config_loader.load_config(str(config_file))
        failures = validate_config(config)

    if json_output:
        _print_json({"status": "invalid" if failures else "valid",
                     "role_name": config.role_name, "failures": failures})
    elif failures:
        console.print(f"❌ {len(failures)} validation error(s) in {config_file}:", style="red")
        for failure in failures:
            console.print(f"  - {failure}")
    else:
        console.print(f"✅ Configuration for role {config.role_name} is valid!", style="green")
    sys.exit(ExitCodes.VALIDATION_ERROR if failures else ExitCodes.SUCCESS)


@cli.command()
@config_option
@aws_profile_option
@aws_region_option
@click.pass_context
def plan(ctx, config_file: Path, aws_profile: Optional[str], aws_region: Optional[str]):
    """Show the operations an apply would perform."""
    logger = ctx.obj["logger"]
    json_output = ctx.obj["json_output"]

    with _exit_on_error(logger, "Plan"):
        config = config_loader.load_config(str(config_file))
        result = _build_reconciler(aws_profile, aws_region).plan(config)

    if json_output:
        payload = result.to_dict()
        payload["status"] = "success"
        _print_json(payload)
    else:
        console.print(f"🔍 Plan for role {config.role_name}", style="bold blue")
        console.print(f"🔐 OIDC provider: {result.provider_action} ({result.provider.arn})")
        if result.is_empty:
            console.print("✅ No changes. Remote state matches the configuration.", style="green")
        else:
            console.print(_operations_table(result.operations))
    sys.exit(ExitCodes.SUCCESS)


@cli.command()
@config_option
@aws_profile_option
@aws_region_option
@click.option(
    "--auto-approve",
    is_flag=True,
    envvar="OIDC_AUTO_APPROVE",
    help="Apply without confirmation (env: OIDC_AUTO_APPROVE)"
)
@click.pass_context
def apply(ctx, config_file: Path, aws_profile: Optional[str], aws_region: Optional[str],
          auto_approve: bool):
    """Reconcile the remote role topology with the configuration."""
    logger = ctx.obj["logger"]
    json_output = ctx.obj["json_output"]

    with _exit_on_error(logger, "Apply"):
        config = config_loader.load_config(str(config_file))
        reconciler = _build_reconciler(aws_profile, aws_region)

        if not auto_approve and not json_output:
            preview = reconciler.plan(config)
            if preview.is_empty:
                console.print("✅ No changes. Remote state matches the configuration.", style="green")
                sys.exit(ExitCodes.SUCCESS)
            console.print(f"\n📋 About to apply to role {config.role_name}:", style="bold")
            console.print(f"🔐 OIDC provider: {preview.provider_action}")
            console.print(_operations_table(preview.operations))
            if not click.confirm("\nProceed with apply?"):
                console.print("Apply cancelled by user", style="yellow")
                sys.exit(ExitCodes.SUCCESS)

        result = reconciler.run(config)

    if json_output:
        _print_json(result.to_dict())
    else:
        report = result.report
        for outcome in report.outcomes:
            marker = {"applied": "✅", "skipped": "⏭️ ", "failed": "❌"}[outcome.status.value]
            line = f"{marker} {outcome.operation.describe()}"
            if outcome.error:
                line += f": {outcome.error}"
            console.print(line)
        if result.succeeded:
            console.print("\n🎉 Apply successful!", style="bold green")
        else:
            console.print(f"\n⚠️  {len(report.failed)} operation(s) failed. Re-run apply to converge.",
                          style="bold red")
        console.print("\n📤 Outputs:", style="bold")
        console.print(_outputs_table(result.outputs.to_dict()))

    sys.exit(ExitCodes.SUCCESS if result.succeeded else ExitCodes.PARTIAL_FAILURE)


@cli.command()
@config_option
@aws_profile_option
@aws_region_option
@click.pass_context
def status(ctx, config_file: Path, aws_profile: Optional[str], aws_region: Optional[str]):
    """Show the current remote state for a configuration."""
    logger = ctx.obj["logger"]
    json_output = ctx.obj["json_output"]

    with _exit_on_error(logger, "Status check"):
        config = config_loader.load_config(str(config_file))
        snapshot = _build_reconciler(aws_profile, aws_region).status(config)

    state = {
        "oidc_provider_arn": snapshot.provider.arn if snapshot.provider else None,
        "role_name": config.role_name,
        "role_arn": snapshot.role.arn if snapshot.role else None,
        "max_session_duration": snapshot.role.max_session_duration if snapshot.role else None,
        "attached_policy_arns": list(snapshot.attached_policy_arns),
        "custom_policies": sorted(snapshot.custom_policies),
    }
    if json_output:
        _print_json({"status": "found" if snapshot.role else "not_found", **state})
    else:
        if snapshot.role is None:
            console.print(f"❌ Role '{config.role_name}' not found", style="red")
        console.print(_outputs_table(state))
    sys.exit(ExitCodes.SUCCESS if snapshot.role else ExitCodes.CONFIG_ERROR)


def _stack_manager(stack_name: str, aws_region: Optional[str], aws_profile: Optional[str],
                   backend_url: Optional[str]) -> PulumiStackManager:
    return PulumiStackManager(stack_name=stack_name, aws_region=aws_region,
                              aws_profile=aws_profile, backend_url=backend_url)


@cli.command("stack-preview")
@config_option
@aws_profile_option
@aws_region_option
@stack_name_option
@backend_url_option
@click.pass_context
def stack_preview(ctx, config_file: Path, aws_profile: Optional[str], aws_region: Optional[str],
                  stack_name: str, backend_url: Optional[str]):
    """Preview the configuration rendered as a Pulumi stack."""
    logger = ctx.obj["logger"]
    json_output = ctx.obj["json_output"]

    with _exit_on_error(logger, "Preview"):
        config = config_loader.load_config(str(config_file))
        failures = validate_config(config)
        if failures:
            raise ValidationError(failures)
        thumbprint = leaf_thumbprint() if config.create_oidc_provider else None
        preview_result = _stack_manager(stack_name, aws_region, aws_profile, backend_url).preview(config, thumbprint)

    change_summary = getattr(preview_result, "change_summary", None) or {}
    if json_output:
        _print_json({"status": "success", "stack_name": stack_name, "changes_summary": change_summary})
    else:
        console.print(f"\n📊 Preview of stack {stack_name}:", style="bold")
        for change, count in change_summary.items():
            console.print(f"  - {change}: {count}")
        console.print("\n✅ Preview completed. No changes were applied.", style="green")
    sys.exit(ExitCodes.SUCCESS)


@cli.command("stack-up")
@config_option
@aws_profile_option
@aws_region_option
@stack_name_option
@backend_url_option
@click.option(
    "--auto-approve",
    is_flag=True,
    envvar="OIDC_AUTO_APPROVE",
    help="Deploy without confirmation (env: OIDC_AUTO_APPROVE)"
)
@click.pass_context
def stack_up(ctx, config_file: Path, aws_profile: Optional[str], aws_region: Optional[str],
             stack_name: str, backend_url: Optional[str], auto_approve: bool):
    """Deploy the configuration as a Pulumi stack."""
    logger = ctx.obj["logger"]
    json_output = ctx.obj["json_output"]

    with _exit_on_error(logger, "Deployment"):
        config = config_loader.load_config(str(config_file))
        failures = validate_config(config)
        if failures:
            raise ValidationError(failures)
        if not auto_approve and not json_output:
            if not click.confirm(f"Deploy role {config.role_name} to stack {stack_name}?"):
                console.print("Deployment cancelled by user", style="yellow")
                sys.exit(ExitCodes.SUCCESS)
        thumbprint = leaf_thumbprint() if config.create_oidc_provider else None
        manager = _stack_manager(stack_name, aws_region, aws_profile, backend_url)
        up_result = manager.deploy(config, thumbprint)
        outputs = {key: output.value for key, output in up_result.outputs.items()}

    if json_output:
        _print_json({"status": "success", "stack_name": stack_name, "outputs": outputs})
    else:
        console.print("\n🎉 Deployment successful!", style="bold green")
        console.print(_outputs_table(outputs))
    sys.exit(ExitCodes.SUCCESS)


@cli.command("stack-destroy")
@aws_profile_option
@aws_region_option
@stack_name_option
@backend_url_option
@click.option(
    "--auto-approve",
    is_flag=True,
    envvar="OIDC_AUTO_APPROVE",
    help="Destroy without confirmation (env: OIDC_AUTO_APPROVE)"
)
@click.pass_context
def stack_destroy(ctx, aws_profile: Optional[str], aws_region: Optional[str], stack_name: str,
                  backend_url: Optional[str], auto_approve: bool):
    """Destroy every resource managed by a Pulumi stack."""
    logger = ctx.obj["logger"]
    json_output = ctx.obj["json_output"]

    if not auto_approve and not json_output:
        console.print(f"⚠️  About to destroy stack: {stack_name}", style="bold red")
        if not click.confirm("Are you sure you want to proceed?"):
            console.print("Destruction cancelled by user", style="yellow")
            sys.exit(ExitCodes.SUCCESS)

    with _exit_on_error(logger, "Destroy"):
        _stack_manager(stack_name, aws_region, aws_profile, backend_url).destroy()

    if json_output:
        _print_json({"status": "success", "message": "Stack destroyed successfully", "stack_name": stack_name})
    else:
        console.print("✅ Stack destroyed successfully!", style="green")
    sys.exit(ExitCodes.SUCCESS)


if __name__ == "__main__":
    cli()
