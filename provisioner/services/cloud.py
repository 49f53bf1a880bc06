"""EC2 lifecycle helper: key pair, security group, instance, cleanup, AMI lookup.

Wraps a boto3 EC2 client.  Botocore ``ClientError`` and ``BotoCoreError`` are
converted to ``CloudError`` at every call site.  Creation failures tear down
whatever was already created (best effort) before re-raising.
"""

from __future__ import annotations

import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from provisioner.errors import CloudError, CloudTimeoutError
from provisioner.models.cloud import (
    CleanupReport,
    CreatedInstance,
    ExistingResources,
    InstanceInfo,
    KeyPairInfo,
    SecurityGroupInfo,
)
from provisioner.utils.logging import get_logger

log = get_logger(__name__)

KEY_PREFIX = "debian-trixie"
INSTANCE_NAME = "Debian-13-Trixie-Instance"
CREATED_BY = "AWS-Instance-Creator-Script"
SG_DESCRIPTION = "Security group for Debian Trixie instance with HTTP/HTTPS access"
INGRESS_PORTS = (22, 80, 443)
DEBIAN_AMI_PATTERN = "debian-13-amd64-*"


BOTO_ERRORS = (ClientError, BotoCoreError)


def _client_error(action: str, exc: Exception) -> CloudError:
    if not isinstance(exc, ClientError):
        return CloudError(f"{action} failed: {exc}")
    code = exc.response.get("Error", {}).get("Code", "Unknown")
    message = exc.response.get("Error", {}).get("Message", str(exc))
    return CloudError(f"{action} failed ({code}): {message}")


class Ec2InstanceManager:
    """Creates and tears down the single-instance Debian stack."""

    def __init__(self, ec2_client: Any, *, sleep: Callable[[float], None] = time.sleep) -> None:
        self.ec2 = ec2_client
        self._sleep = sleep

    # ── creation steps ────────────────────────────────────────────────

    def create_key_pair(self, prefix: str = KEY_PREFIX) -> tuple[str, str]:
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        name = f"{prefix}-{stamp}"
        try:
            response = self.ec2.create_key_pair(KeyName=name, KeyType="rsa", KeyFormat="pem")
        except BOTO_ERRORS as exc:
            raise _client_error("CreateKeyPair", exc) from exc
        log.info("cloud.key_pair_created", key_name=name)
        return name, response["KeyMaterial"]

    def default_vpc_id(self) -> Optional[str]:
        try:
            vpcs = self.ec2.describe_vpcs(Filters=[{"Name": "isDefault", "Values": ["true"]}])["Vpcs"]
        except BOTO_ERRORS as exc:
            raise _client_error("DescribeVpcs", exc) from exc
        return vpcs[0]["VpcId"] if vpcs else None

    def create_security_group(self) -> str:
        vpc_id = self.default_vpc_id()
        if vpc_id is None:
            raise CloudError("no default VPC in this region; create one with 'aws ec2 create-default-vpc'")
        name = f"{KEY_PREFIX}-sg-{int(time.time() * 1000)}"
        try:
            group_id = self.ec2.create_security_group(
                GroupName=name,
                Description=SG_DESCRIPTION,
                VpcId=vpc_id,
            )["GroupId"]
            self.ec2.authorize_security_group_ingress(
                GroupId=group_id,
                IpPermissions=[
                    {
                        "IpProtocol": "tcp",
                        "FromPort": port,
                        "ToPort": port,
                        "IpRanges": [{"CidrIp": "0.0.0.0/0"}],
                    }
                    for port in INGRESS_PORTS
                ],
            )
        except BOTO_ERRORS as exc:
            raise _client_error("CreateSecurityGroup", exc) from exc
        log.info("cloud.security_group_created", group_id=group_id, vpc_id=vpc_id)
        return group_id

    def launch_instance(self, ami_id: str, instance_type: str, key_name: str, security_group_id: str) -> str:
        try:
            response = self.ec2.run_instances(
                ImageId=ami_id,
                InstanceType=instance_type,
                KeyName=key_name,
                SecurityGroupIds=[security_group_id],
                MinCount=1,
                MaxCount=1,
                TagSpecifications=[
                    {
                        "ResourceType": "instance",
                        "Tags": [
                            {"Key": "Name", "Value": INSTANCE_NAME},
                            {"Key": "CreatedBy", "Value": CREATED_BY},
                        ],
                    }
                ],
            )
        except BOTO_ERRORS as exc:
            raise _client_error("RunInstances", exc) from exc
        instance_id = response["Instances"][0]["InstanceId"]
        log.info("cloud.instance_launched", instance_id=instance_id, ami_id=ami_id, instance_type=instance_type)
        return instance_id

    def _describe_instance(self, instance_id: str) -> dict:
        try:
            reservations = self.ec2.describe_instances(InstanceIds=[instance_id])["Reservations"]
        except BOTO_ERRORS as exc:
            raise _client_error("DescribeInstances", exc) from exc
        if not reservations or not reservations[0]["Instances"]:
            raise CloudError(f"instance {instance_id} not found")
        return reservations[0]["Instances"][0]

    def wait_until_running(self, instance_id: str, *, max_attempts: int = 60, interval: float = 5.0) -> str:
        """Poll until ``running`` and return the public IP address."""
        for attempt in range(1, max_attempts + 1):
            instance = self._describe_instance(instance_id)
            state = instance["State"]["Name"]
            log.debug("cloud.wait", instance_id=instance_id, attempt=attempt, state=state)
            if state == "running":
                ip = instance.get("PublicIpAddress")
                if not ip:
                    raise CloudError(f"instance {instance_id} is running but has no public IP address")
                log.info("cloud.instance_running", instance_id=instance_id, public_ip=ip, attempts=attempt)
                return ip
            if attempt < max_attempts:
                self._sleep(interval)
        raise CloudTimeoutError(
            f"instance {instance_id} did not reach 'running' after {max_attempts} checks",
        )

    @staticmethod
    def save_key_pair(key_material: str, public_ip: str, directory: str = ".") -> str:
        path = Path(directory).expanduser() / f"{public_ip}.pem"
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as fh:
            fh.write(key_material)
        os.chmod(path, 0o600)
        log.info("cloud.key_saved", path=str(path))
        return str(path)

    def create_instance(
        self,
        *,
        ami_id: str,
        instance_type: str = "t3.small",
        key_directory: str = ".",
        max_attempts: int = 60,
        interval: float = 5.0,
    ) -> CreatedInstance:
        key_name: Optional[str] = None
        group_id: Optional[str] = None
        instance_id: Optional[str] = None
        try:
            key_name, material = self.create_key_pair()
            group_id = self.create_security_group()
            instance_id = self.launch_instance(ami_id, instance_type, key_name, group_id)
            public_ip = self.wait_until_running(instance_id, max_attempts=max_attempts, interval=interval)
            key_file = self.save_key_pair(material, public_ip, key_directory)
        except (CloudError, OSError) as exc:
            log.error("cloud.create_failed", error=str(exc))
            self.cleanup_on_failure(instance_id, group_id, key_name)
            raise
        return CreatedInstance(
            instance_id=instance_id,
            public_ip=public_ip,
            key_name=key_name,
            key_file=key_file,
            security_group_id=group_id,
            ami_id=ami_id,
            instance_type=instance_type,
        )

    # ── teardown ──────────────────────────────────────────────────────

    def cleanup_on_failure(
        self,
        instance_id: Optional[str],
        security_group_id: Optional[str],
        key_name: Optional[str],
    ) -> list[str]:
        """Best effort: errors are logged and returned, never raised."""
        errors: list[str] = []
        if instance_id:
            try:
                self.ec2.terminate_instances(InstanceIds=[instance_id])
                log.info("cloud.rollback_terminated", instance_id=instance_id)
            except BOTO_ERRORS as exc:
                errors.append(str(_client_error("TerminateInstances", exc)))
        if security_group_id:
            try:
                self.ec2.delete_security_group(GroupId=security_group_id)
                log.info("cloud.rollback_sg_deleted", group_id=security_group_id)
            except BOTO_ERRORS as exc:
                errors.append(str(_client_error("DeleteSecurityGroup", exc)))
        if key_name:
            try:
                self.ec2.delete_key_pair(KeyName=key_name)
                log.info("cloud.rollback_key_deleted", key_name=key_name)
            except BOTO_ERRORS as exc:
                errors.append(str(_client_error("DeleteKeyPair", exc)))
        for error in errors:
            log.warning("cloud.rollback_error", error=error)
        return errors

    def wait_until_terminated(self, instance_id: str, *, max_attempts: int = 30, interval: float = 10.0) -> bool:
        for attempt in range(1, max_attempts + 1):
            if self._describe_instance(instance_id)["State"]["Name"] == "terminated":
                return True
            if attempt < max_attempts:
                self._sleep(interval)
        return False

    def cleanup_resources(
        self,
        *,
        instance_id: Optional[str] = None,
        key_name: Optional[str] = None,
        security_group_id: Optional[str] = None,
        key_directory: str = ".",
    ) -> CleanupReport:
        report = CleanupReport()
        public_ip: Optional[str] = None

        if instance_id:
            try:
                public_ip = self._describe_instance(instance_id).get("PublicIpAddress")
                self.ec2.terminate_instances(InstanceIds=[instance_id])
                if not self.wait_until_terminated(instance_id):
                    log.warning("cloud.termination_slow", instance_id=instance_id)
                report.terminated_instance = instance_id
                log.info("cloud.instance_terminated", instance_id=instance_id)
            except BOTO_ERRORS as exc:
                report.errors.append(str(_client_error("TerminateInstances", exc)))
            except CloudError as exc:
                report.errors.append(str(exc))

        if security_group_id:
            try:
                groups = self.ec2.describe_security_groups(GroupIds=[security_group_id])["SecurityGroups"]
                if groups and groups[0].get("GroupName") == "default":
                    log.info("cloud.default_sg_skipped", group_id=security_group_id)
                else:
                    self.ec2.delete_security_group(GroupId=security_group_id)
                    report.deleted_security_group = security_group_id
                    log.info("cloud.security_group_deleted", group_id=security_group_id)
            except BOTO_ERRORS as exc:
                report.errors.append(str(_client_error("DeleteSecurityGroup", exc)))

        if key_name:
            try:
                self.ec2.delete_key_pair(KeyName=key_name)
                report.deleted_key_pair = key_name
                log.info("cloud.key_pair_deleted", key_name=key_name)
            except BOTO_ERRORS as exc:
                report.errors.append(str(_client_error("DeleteKeyPair", exc)))

        if public_ip:
            key_file = Path(key_directory).expanduser() / f"{public_ip}.pem"
            if key_file.exists():
                try:
                    key_file.unlink()
                    report.removed_key_file = str(key_file)
                except OSError as exc:
                    report.errors.append(f"could not remove {key_file}: {exc}")

        for error in report.errors:
            log.warning("cloud.cleanup_error", error=error)
        return report

    # ── discovery ─────────────────────────────────────────────────────

    def find_existing_resources(self) -> ExistingResources:
        try:
            reservations = self.ec2.describe_instances(Filters=[
                {"Name": "tag:Name", "Values": [f"{INSTANCE_NAME}*"]},
                {"Name": "instance-state-name", "Values": ["running", "pending", "stopped"]},
            ])["Reservations"]
            key_pairs = self.ec2.describe_key_pairs()["KeyPairs"]
            groups = self.ec2.describe_security_groups(Filters=[
                {"Name": "description", "Values": ["Security group for Debian Trixie instance*"]},
            ])["SecurityGroups"]
        except BOTO_ERRORS as exc:
            raise _client_error("Describe resources", exc) from exc

        found = ExistingResources()
        for reservation in reservations:
            for inst in reservation["Instances"]:
                launch = inst.get("LaunchTime")
                found.instances.append(InstanceInfo(
                    instance_id=inst["InstanceId"],
                    state=inst["State"]["Name"],
                    public_ip=inst.get("PublicIpAddress"),
                    key_name=inst.get("KeyName"),
                    launch_time=launch.isoformat() if hasattr(launch, "isoformat") else launch,
                    security_group_ids=[g["GroupId"] for g in inst.get("SecurityGroups", [])],
                ))
        found.key_pairs = [
            KeyPairInfo(key_name=kp["KeyName"], key_pair_id=kp.get("KeyPairId"))
            for kp in key_pairs
            if kp["KeyName"].startswith(f"{KEY_PREFIX}-")
        ]
        found.security_groups = [
            SecurityGroupInfo(group_id=g["GroupId"], group_name=g["GroupName"], description=g.get("Description", ""))
            for g in groups
            if g["GroupName"] != "default"
        ]
        return found

    def find_debian_ami(self, pattern: str = DEBIAN_AMI_PATTERN) -> str:
        """Newest available Debian image; falls back to a broader search."""
        image = self._newest_image(["amazon"], pattern, strict=True)
        if image is None:
            log.info("cloud.ami_fallback", pattern=pattern)
            image = self._newest_image(["amazon", "aws-marketplace"], "debian-*", strict=False)
        if image is None:
            raise CloudError("no Debian AMI found in this region")
        log.info("cloud.ami_found", ami_id=image["ImageId"], name=image.get("Name"))
        return image["ImageId"]

    def _newest_image(self, owners: list[str], pattern: str, *, strict: bool) -> Optional[dict]:
        filters = [
            {"Name": "name", "Values": [pattern]},
            {"Name": "state", "Values": ["available"]},
        ]
        if strict:
            filters += [
                {"Name": "architecture", "Values": ["x86_64"]},
                {"Name": "root-device-type", "Values": ["ebs"]},
                {"Name": "virtualization-type", "Values": ["hvm"]},
            ]
        try:
            images = self.ec2.describe_images(Owners=owners, Filters=filters)["Images"]
        except BOTO_ERRORS as exc:
            raise _client_error("DescribeImages", exc) from exc
        if not images:
            return None
        return max(images, key=lambda img: img.get("CreationDate", ""))
