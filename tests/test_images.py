import pytest

from stackvm.errors import ValidationError
from stackvm.images import (
    OS_PARAMETER_PATHS,
    ImageResolver,
    lookup_image_path,
    supported_operating_systems,
)


def test_every_path_is_a_public_parameter():
    assert len(OS_PARAMETER_PATHS) == 7
    for path in OS_PARAMETER_PATHS.values():
        assert path.startswith("/aws/service/")


def test_lookup_known_os():
    path = lookup_image_path("ubuntu-22.04")
    assert "ubuntu/server/22.04" in path


def test_unsupported_os_lists_every_supported_value():
    with pytest.raises(ValidationError) as exc:
        lookup_image_path("windows-2022")
    message = str(exc.value)
    assert "windows-2022" in message
    for os_name in supported_operating_systems():
        assert os_name in message


def test_resolve_reads_parameter(cloud, parameters):
    image_id = ImageResolver(parameters).resolve("debian-12")
    assert image_id == "ami-debian-12"
    assert cloud.calls == [("get_parameter", OS_PARAMETER_PATHS["debian-12"])]


def test_resolve_unsupported_makes_no_remote_call(cloud, parameters):
    with pytest.raises(ValidationError):
        ImageResolver(parameters).resolve("centos-7")
    assert cloud.calls == []
