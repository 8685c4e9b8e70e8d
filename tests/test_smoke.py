from __future__ import annotations

import importlib

import pytest


@pytest.mark.unit
def test_import_package() -> None:
    importlib.import_module("certoperator")


@pytest.mark.unit
def test_import_cli_main() -> None:
    importlib.import_module("certoperator.cli.main")


@pytest.mark.unit
def test_import_operator() -> None:
    importlib.import_module("certoperator.operator")


@pytest.mark.unit
def test_bundled_manifests_present() -> None:
    from certoperator import global_config as g

    for name in (g.CLUSTER_ROLE_YML, g.CLUSTER_ROLE_BINDING_TEMPLATE, g.SECURITY_CONTEXT_CONSTRAINTS_YML):
        assert (g.MANIFESTS_DIR / name).is_file()
