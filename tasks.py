# type: ignore
import os

from invoke import task

PACKAGE = "casetalink"


@task
def venv(ctx):
    """Create .venv with the package plus test and dev extras."""
    ctx.run("uv sync --extra test --extra dev")


@task
def clean(ctx):
    """
    Remove untracked files (build output, caches, coverage data).
    Asks before deleting anything.
    """
    ctx.run("git clean -nfdx")

    response = input("Remove all untracked files? (y/n) [n]: ").strip().lower()
    if response == "y":
        ctx.run("git clean -fdx")


@task
def lint(ctx):
    """Run ruff and mypy over the package and tests."""
    ctx.run("ruff check src tests", pty=True)
    ctx.run("ruff format --check src tests", pty=True)
    ctx.run("mypy src", pty=True)


@task(help={"k": "Only run tests matching this expression"})
def test(ctx, k=None):
    """Run tests with coverage information."""
    select = f" -k '{k}'" if k else ""
    ctx.run(
        f"pytest --cov={PACKAGE} --cov-report=term-missing{select}", pty=True
    )


@task(pre=[lint, test])
def ci(ctx):
    """Lint and test, as CI does."""


@task
def build_package(ctx):
    """Build sdist and wheel into dist/."""
    ctx.run("rm -rf dist")
    ctx.run("uv build")


@task(pre=[ci])
def release(ctx):
    """Build the package and publish it to PyPI."""
    token = os.getenv("PYPI_TOKEN")
    if not token:
        raise ValueError("PYPI_TOKEN environment variable is not set")

    build_package(ctx)
    ctx.run(f"uv publish --token {token}")
