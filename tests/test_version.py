from setimg.version import BuildInfo


def test_tag_wins():
    assert BuildInfo("0.3.0", git_commit="abcdef123456", git_tag="v0.3.0").effective_version() == "v0.3.0"


def test_commit_gives_dev_version():
    assert BuildInfo("0.3.0", git_commit="abcdef123456").effective_version() == "dev-abcdef1"


def test_installed_version_otherwise():
    assert BuildInfo("0.3.0").effective_version() == "0.3.0"


def test_from_environment(monkeypatch):
    monkeypatch.setenv("SETIMG_GIT_COMMIT", "1234567890")
    monkeypatch.delenv("SETIMG_GIT_TAG", raising=False)
    info = BuildInfo.from_environment()
    assert info.git_commit == "1234567890"
    assert info.python_version
    assert "dev-1234567" in info.describe()
