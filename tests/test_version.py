from sipbridge.version import VERSION, version_string


def test_version_string():
    assert version_string() == "0.0.1"


def test_version_string_matches_constant():
    assert version_string() == VERSION
    assert all(part.isdigit() for part in version_string().split("."))