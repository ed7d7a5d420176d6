"""
Remote store interface and its boto3 implementation.

The reconciler only ever talks to IAM through RemoteStore, so the planning
and apply logic can run against any implementation (tests use an in-memory
one). Boto3RemoteStore translates botocore ClientError into
RemoteOperationError.
"""

import json
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Optional
from urllib.parse import unquote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from . import constants
from .errors import RemoteOperationError
from .models import CustomPolicyRecord, ProviderReference, RoleRecord, strip_scheme

logger = logging.getLogger(__name__)


class RemoteStore(ABC):
    """get/create/update/delete for providers, roles, policies and attachments."""

    @abstractmethod
    def find_oidc_provider(self, url: str) -> Optional[ProviderReference]:
        """Looks up a registered provider by issuer URL (with or without scheme)."""

    @abstractmethod
    def create_oidc_provider(self, url: str, client_ids: list[str], thumbprints: list[str],
                             tags: dict) -> ProviderReference:
        ...

    @abstractmethod
    def get_role(self, role_name: str) -> Optional[RoleRecord]:
        ...

    @abstractmethod
    def create_role(self, role_name: str, description: str, trust_policy: dict,
                    max_session_duration: int, tags: dict) -> RoleRecord:
        ...

    @abstractmethod
    def update_trust_policy(self, role_name: str, trust_policy: dict) -> None:
        ...

    @abstractmethod
    def update_role(self, role_name: str, description: str, max_session_duration: int) -> None:
        ...

    @abstractmethod
    def list_attached_policy_arns(self, role_name: str) -> list[str]:
        ...

    @abstractmethod
    def list_owned_policies(self, path: str, name_prefix: str) -> list[CustomPolicyRecord]:
        """Lists customer policies under `path`; record names have `name_prefix` removed."""

    @abstractmethod
    def create_policy(self, policy_name: str, path: str, document: str, description: str,
                      tags: dict) -> str:
        """Creates a customer managed policy and returns its ARN."""

    @abstractmethod
    def update_policy(self, policy_arn: str, document: str) -> None:
        """Publishes `document` as the new default version."""

    @abstractmethod
    def delete_policy(self, policy_arn: str) -> bool:
        """Deletes the policy. Returns False when it was already gone."""

    @abstractmethod
    def attach_policy(self, role_name: str, policy_arn: str) -> None:
        ...

    @abstractmethod
    def detach_policy(self, role_name: str, policy_arn: str) -> bool:
        """Detaches the policy. Returns False when it was not attached."""


def _aws_tags(tags: dict) -> list[dict]:
    return [{"Key": key, "Value": value} for key, value in tags.items()]


def _decode_document(document) -> dict:
    """IAM documents come back either decoded or as URL-encoded JSON text."""
    if isinstance(document, dict):
        return document
    return json.loads(unquote(document))


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "Unknown")


@contextmanager
def _translate_errors(action: str):
    try:
        yield
    except ClientError as e:
        raise RemoteOperationError(action, str(e), code=_error_code(e)) from e
    except BotoCoreError as e:
        raise RemoteOperationError(action, str(e)) from e


class Boto3RemoteStore(RemoteStore):
    """RemoteStore backed by the boto3 IAM client."""

    def __init__(self, iam_client=None, aws_profile: Optional[str] = None,
                 aws_region: Optional[str] = None):
        if iam_client is None:
            session_args = {}
            if aws_profile:
                session_args["profile_name"] = aws_profile
            if aws_region:
                session_args["region_name"] = aws_region
            iam_client = boto3.Session(**session_args).client("iam")
        self.iam = iam_client

    def find_oidc_provider(self, url):
        host = strip_scheme(url)
        with _translate_errors("ListOpenIDConnectProviders"):
            providers = self.iam.list_open_id_connect_providers().get("OpenIDConnectProviderList", [])
        for provider in providers:
            if provider["Arn"].endswith(f":oidc-provider/{host}"):
                logger.debug(f"Found OIDC provider {provider['Arn']}")
                return ProviderReference(arn=provider["Arn"], url=host)
        return None

    def create_oidc_provider(self, url, client_ids, thumbprints, tags):
        host = strip_scheme(url)
        with _translate_errors("CreateOpenIDConnectProvider"):
            response = self.iam.create_open_id_connect_provider(
                Url=f"https://{host}",
                ClientIDList=list(client_ids),
                ThumbprintList=list(thumbprints),
                Tags=_aws_tags(tags),
            )
        logger.info(f"Created OIDC provider: {response['OpenIDConnectProviderArn']}")
        return ProviderReference(arn=response["OpenIDConnectProviderArn"], url=host, created=True)

    def _role_record(self, role: dict) -> RoleRecord:
        return RoleRecord(
            name=role["RoleName"],
            arn=role["Arn"],
            role_id=role["RoleId"],
            trust_policy=_decode_document(role["AssumeRolePolicyDocument"]),
            max_session_duration=role.get("MaxSessionDuration", constants.DEFAULT_SESSION_DURATION),
            description=role.get("Description", ""),
        )

    def get_role(self, role_name):
        try:
            response = self.iam.get_role(RoleName=role_name)
        except ClientError as e:
            if _error_code(e) == "NoSuchEntity":
                return None
            raise RemoteOperationError("GetRole", str(e), code=_error_code(e)) from e
        except BotoCoreError as e:
            raise RemoteOperationError("GetRole", str(e)) from e
        return self._role_record(response["Role"])

    def create_role(self, role_name, description, trust_policy, max_session_duration, tags):
        with _translate_errors("CreateRole"):
            response = self.iam.create_role(
                RoleName=role_name,
                AssumeRolePolicyDocument=json.dumps(trust_policy),
                Description=description,
                MaxSessionDuration=max_session_duration,
                Tags=_aws_tags(tags),
            )
        # create_role does not echo MaxSessionDuration on every API version
        role = dict(response["Role"])
        role.setdefault("AssumeRolePolicyDocument", trust_policy)
        role.setdefault("MaxSessionDuration", max_session_duration)
        role.setdefault("Description", description)
        return self._role_record(role)

    def update_trust_policy(self, role_name, trust_policy):
        with _translate_errors("UpdateAssumeRolePolicy"):
            self.iam.update_assume_role_policy(RoleName=role_name, PolicyDocument=json.dumps(trust_policy))

    def update_role(self, role_name, description, max_session_duration):
        with _translate_errors("UpdateRole"):
            self.iam.update_role(RoleName=role_name, Description=description,
                                 MaxSessionDuration=max_session_duration)

    def list_attached_policy_arns(self, role_name):
        arns = []
        with _translate_errors("ListAttachedRolePolicies"):
            paginator = self.iam.get_paginator("list_attached_role_policies")
            for page in paginator.paginate(RoleName=role_name):
                arns.extend(policy["PolicyArn"] for policy in page["AttachedPolicies"])
        return arns

    def list_owned_policies(self, path, name_prefix):
        records = []
        with _translate_errors("ListPolicies"):
            paginator = self.iam.get_paginator("list_policies")
            for page in paginator.paginate(Scope="Local", PathPrefix=path):
                for policy in page["Policies"]:
                    if policy.get("Path") != path:
                        continue
                    version = self.iam.get_policy_version(
                        PolicyArn=policy["Arn"], VersionId=policy["DefaultVersionId"]
                    )
                    document = _decode_document(version["PolicyVersion"]["Document"])
                    name = policy["PolicyName"]
                    if name.startswith(name_prefix):
                        name = name[len(name_prefix):]
                    records.append(CustomPolicyRecord(name=name, arn=policy["Arn"], document=json.dumps(document)))
        return records

    def create_policy(self, policy_name, path, document, description, tags):
        with _translate_errors("CreatePolicy"):
            response = self.iam.create_policy(
                PolicyName=policy_name,
                Path=path,
                PolicyDocument=document,
                Description=description,
                Tags=_aws_tags(tags),
            )
        return response["Policy"]["Arn"]

    def _non_default_versions(self, policy_arn: str) -> list[dict]:
        versions = self.iam.list_policy_versions(PolicyArn=policy_arn)["Versions"]
        return sorted((v for v in versions if not v["IsDefaultVersion"]), key=lambda v: v["CreateDate"])

    def update_policy(self, policy_arn, document):
        with _translate_errors("CreatePolicyVersion"):
            stale = self._non_default_versions(policy_arn)
            # IAM keeps at most five versions; drop the oldest non-default one to make room
            if len(stale) >= constants.MAX_POLICY_VERSIONS - 1:
                self.iam.delete_policy_version(PolicyArn=policy_arn, VersionId=stale[0]["VersionId"])
            self.iam.create_policy_version(PolicyArn=policy_arn, PolicyDocument=document, SetAsDefault=True)

    def delete_policy(self, policy_arn):
        try:
            for version in self._non_default_versions(policy_arn):
                self.iam.delete_policy_version(PolicyArn=policy_arn, VersionId=version["VersionId"])
            self.iam.delete_policy(PolicyArn=policy_arn)
        except ClientError as e:
            if _error_code(e) == "NoSuchEntity":
                return False
            raise RemoteOperationError("DeletePolicy", str(e), code=_error_code(e)) from e
        except BotoCoreError as e:
            raise RemoteOperationError("DeletePolicy", str(e)) from e
        return True

    def attach_policy(self, role_name, policy_arn):
        with _translate_errors("AttachRolePolicy"):
            self.iam.attach_role_policy(RoleName=role_name, PolicyArn=policy_arn)

    def detach_policy(self, role_name, policy_arn):
        try:
            self.iam.detach_role_policy(RoleName=role_name, PolicyArn=policy_arn)
        except ClientError as e:
            if _error_code(e) == "NoSuchEntity":
                return False
            raise RemoteOperationError("DetachRolePolicy", str(e), code=_error_code(e)) from e
        except BotoCoreError as e:
            raise RemoteOperationError("DetachRolePolicy", str(e)) from e
        return True
