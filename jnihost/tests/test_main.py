import jnihost.main as main_module


def test_app_built_once_on_first_access(tmp_path, monkeypatch):
    built = []
    monkeypatch.setenv("JNIHOST_PROJECT_ROOT", str(tmp_path))
    monkeypatch.delenv("JNIHOST_LOG_DIR", raising=False)
    monkeypatch.setattr(main_module, "_app", None)
    real_create = main_module.create_app

    def counting_create(settings):
        built.append(settings)
        return real_create(settings)
    monkeypatch.setattr(main_module, "create_app", counting_create)

    assert built == []
    first = main_module.app
    assert main_module.app is first
    assert len(built) == 1
    assert built[0].project_root == tmp_path.resolve()
