"""Nox sessions for the battle bot."""

import nox

nox.options.sessions = ["tests", "lint"]
PYTHON = "3.11"
COVERED = ["battle_bot", "verifier_bot", "bots", "battlebot"]


@nox.session(python=PYTHON)
def tests(session):
    """Run pytest with branch coverage; extra args select tests."""
    session.install("-e", ".[dev]")
    session.run(
        "pytest",
        *(f"--cov={name}" for name in COVERED),
        "--cov-branch",
        "--cov-report=term-missing",
        "--cov-report=xml:coverage.xml",
        "--cov-fail-under=80",
        *session.posargs,
    )


@nox.session(python=PYTHON)
def lint(session):
    session.install("ruff>=0.1.0")
    session.run("ruff", "check", ".")
    session.run("ruff", "format", "--check", ".")


@nox.session(python=PYTHON)
def format_code(session):
    session.install("ruff>=0.1.0")
    session.run("ruff", "format", ".")
    session.run("ruff", "check", "--fix", ".")
