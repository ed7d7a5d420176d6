"""
Pulumi Automation API Manager
Drives the declarative rendering of a DesiredConfig through a Pulumi stack
"""

import logging
import os
from pathlib import Path
from typing import Callable, Dict, Optional

from pulumi import automation as auto

from . import iam_resources
from .models import DesiredConfig

logger = logging.getLogger(__name__)

PROJECT_NAME = "oidc-trust-reconciler"
STATE_DIR_NAME = ".pulumi-state"


class PulumiStackManager:
    """Manages Pulumi stack operations using the Automation API."""

    def __init__(self, project_name: str = PROJECT_NAME,
                 stack_name: str = "dev",
                 aws_region: Optional[str] = None,
                 aws_profile: Optional[str] = None,
                 backend_url: Optional[str] = None):
        self.project_name = project_name
        self.stack_name = stack_name
        self.aws_region = aws_region
        self.aws_profile = aws_profile
        self.work_dir = Path.cwd()

        # Explicit URL wins over PULUMI_BACKEND_URL; local file backend otherwise
        self.backend_url = backend_url or os.getenv("PULUMI_BACKEND_URL")
        if not self.backend_url:
            state_dir = self.work_dir / STATE_DIR_NAME
            state_dir.mkdir(exist_ok=True)
            self.backend_url = f"file://{state_dir}"

    def _create_pulumi_program(self, config: DesiredConfig, thumbprint: Optional[str]) -> Callable[[], None]:
        """Create the Pulumi program function that defines all resources."""

        def pulumi_program():
            aws_provider = None
            if self.aws_region:
                import pulumi_aws as aws
                provider_opts = {"region": self.aws_region}
                if self.aws_profile:
                    provider_opts["profile"] = self.aws_profile
                aws_provider = aws.Provider("aws-provider", **provider_opts)
                logger.info(f"Configured AWS provider for region {self.aws_region}")

            iam_resources.define_trust_stack(config, thumbprint, aws_provider)

        return pulumi_program

    def _get_stack_config(self) -> Dict[str, str]:
        config = {}
        if self.aws_region:
            config["aws:region"] = self.aws_region
        if self.aws_profile:
            config["aws:profile"] = self.aws_profile
        return config

    def _create_workspace_settings(self) -> auto.LocalWorkspaceOptions:
        return auto.LocalWorkspaceOptions(
            work_dir=str(self.work_dir),
            env_vars={
                "PULUMI_BACKEND_URL": self.backend_url,
                "PULUMI_SKIP_UPDATE_CHECK": "true",
                "PULUMI_CONFIG_PASSPHRASE": os.getenv("PULUMI_CONFIG_PASSPHRASE", ""),
            }
        )

    def _select_stack(self, program: Optional[Callable[[], None]] = None) -> auto.Stack:
        """Creates or selects the stack and applies the AWS configuration."""
        stack = auto.create_or_select_stack(
            stack_name=self.stack_name,
            project_name=self.project_name,
            program=program or (lambda: None),
            opts=self._create_workspace_settings()
        )
        for key, value in self._get_stack_config().items():
            stack.set_config(key, auto.ConfigValue(value=value))
        return stack

    def preview(self, config: DesiredConfig, thumbprint: Optional[str] = None) -> auto.PreviewResult:
        """Preview the stack without making changes."""
        logger.info("Creating stack preview...")
        try:
            stack = self._select_stack(self._create_pulumi_program(config, thumbprint))
            logger.info("Refreshing stack state...")
            stack.refresh(on_output=self._output_handler)
            return stack.preview(on_output=self._output_handler)
        except Exception as e:
            logger.error(f"Failed to create preview: {e}")
            raise

    def deploy(self, config: DesiredConfig, thumbprint: Optional[str] = None) -> auto.UpResult:
        """Apply the stack to AWS."""
        logger.info("Starting stack deployment...")
        try:
            stack = self._select_stack(self._create_pulumi_program(config, thumbprint))
            logger.info("Refreshing stack state...")
            stack.refresh(on_output=self._output_handler)
            logger.info("Applying changes...")
            up_result = stack.up(on_output=self._output_handler)
            logger.info("Deployment completed successfully!")
            return up_result
        except Exception as e:
            logger.error(f"Deployment failed: {e}")
            raise

    def destroy(self) -> auto.DestroyResult:
        """Destroy all resources in the stack."""
        logger.warning("Starting resource destruction...")
        try:
            destroy_result = self._select_stack().destroy(on_output=self._output_handler)
            logger.info("Resources destroyed successfully!")
            return destroy_result
        except Exception as e:
            logger.error(f"Destruction failed: {e}")
            raise

    def get_outputs(self) -> Dict[str, auto.OutputValue]:
        return self._select_stack().outputs()

    def _output_handler(self, output: str) -> None:
        """Handle Pulumi output for logging."""
        if any(skip in output for skip in ['Downloading', 'Installing', 'diagnostic:']):
            return

        if any(keyword in output for keyword in ['error:', 'Error:', 'failed', 'Failed']):
            logger.error(f"Pulumi: {output.strip()}")
        elif any(keyword in output for keyword in ['warning:', 'Warning:']):
            logger.warning(f"Pulumi: {output.strip()}")
        else:
            logger.debug(f"Pulumi: {output.strip()}")
