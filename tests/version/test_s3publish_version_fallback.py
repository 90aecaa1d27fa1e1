import importlib


def test_version_fallback_to_unknown(monkeypatch):
    import importlib.metadata as md

    def _raise(_name):
        raise md.PackageNotFoundError

    monkeypatch.setattr(md, "version", _raise, raising=True)

    # Reload _version_info first, then the package, with metadata.version patched
    import s3publish._version_info
    import s3publish
    importlib.reload(s3publish._version_info)
    package = importlib.reload(s3publish)

    assert package.__version__ == "unknown"

    monkeypatch.undo()
    importlib.reload(s3publish._version_info)
    package = importlib.reload(package)
    assert package.__version__ != "unknown"
