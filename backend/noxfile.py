import nox

PYTHON_VERSION = "3.11"

SOURCES = ["api", "common", "packages", "workers"]


@nox.session(python=PYTHON_VERSION)
def tests(session):
    session.install("-e", "..[test]")
    session.run("pytest", "tests/unit", *session.posargs)


@nox.session(python=PYTHON_VERSION)
def lint(session):
    session.install("-e", "..[test]")
    session.run("ruff", "check", ".")


@nox.session(python=PYTHON_VERSION)
def format(session):
    session.install("-e", "..[test]")
    session.run("black", "--check", *SOURCES)
    session.run("ruff", "check", ".")
