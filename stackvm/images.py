"""Resolve abstract OS names to machine image ids."""

from .clients import ParameterService
from .errors import ValidationError
from .utils import log

OS_PARAMETER_PATHS = {
    "ubuntu-24.04": "/aws/service/canonical/ubuntu/server/24.04/stable/current/amd64/hvm/ebs-gp2/ami-id",
    "ubuntu-22.04": "/aws/service/canonical/ubuntu/server/22.04/stable/current/amd64/hvm/ebs-gp2/ami-id",
    "ubuntu-20.04": "/aws/service/canonical/ubuntu/server/20.04/stable/current/amd64/hvm/ebs-gp2/ami-id",
    "amazon-linux-2023": "/aws/service/ami-amazon-linux-latest/al2023-ami-kernel-default-x86_64",
    "amazon-linux-2": "/aws/service/ami-amazon-linux-latest/amzn2-ami-hvm-x86_64-gp2",
    "debian-12": "/aws/service/debian/release/12/latest/amd64",
    "debian-11": "/aws/service/debian/release/11/latest/amd64",
}


def supported_operating_systems() -> list[str]:
    return sorted(OS_PARAMETER_PATHS)


def lookup_image_path(os_name: str) -> str:
    """Map an OS identifier to its public parameter path.

    :param os_name: Abstract OS identifier (e.g. ubuntu-24.04)
    :return: Parameter store path holding the current image id
    :raises ValidationError: If the OS is not in the table
    """
    path = OS_PARAMETER_PATHS.get(os_name)
    if path is None:
        raise ValidationError(
            f"unsupported OS '{os_name}': supported values are "
            f"{', '.join(supported_operating_systems())}"
        )
    return path


class ImageResolver:
    def __init__(self, parameters: ParameterService):
        self.parameters = parameters

    def resolve(self, os_name: str) -> str:
        path = lookup_image_path(os_name)
        image_id = self.parameters.get_parameter(path)
        log(f"Resolved '{os_name}' to image '{image_id}'")
        return image_id
