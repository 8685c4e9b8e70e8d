"""
certoperator core package.

Reconciliation engine for OperatorPipeline descriptors. It currently provides:
- A Typer-based CLI (`certoperator.cli`)
- kopf event wiring (`certoperator.operator`)
- Typed store access over the kubernetes client (`certoperator.store`)
- The reconcile pass and its sub-reconcilers (`certoperator.pipeline`)

Configuration:
- Shared, project-wide constants live in `certoperator.global_config`.
- Runtime settings read from the environment live in `certoperator.config`
  and build on top of `certoperator.global_config`.
"""
