"""
Shared fixtures for rail-ci tests.
"""

import pytest
from django.contrib.auth import get_user_model

from rail_ci.projects.models import AccessLevel
from tests.factories import SIMPLE_CONFIG, add_blob, add_commit, add_member, make_project, make_user


@pytest.fixture
def user(db):
    return make_user()


@pytest.fixture
def maintainer(db):
    return make_user("maintainer")


@pytest.fixture
def superuser(db):
    return get_user_model().objects.create_superuser(
        username="admin", password="password", email="admin@example.com"
    )


@pytest.fixture
def project(db, user, maintainer):
    project = make_project()
    add_member(project, user, AccessLevel.DEVELOPER)
    add_member(project, maintainer, AccessLevel.MAINTAINER)
    return project


@pytest.fixture
def head_commit(project):
    commit = add_commit(project, branch="main")
    add_blob(project, commit.sha, ".gitlab-ci.yml", SIMPLE_CONFIG)
    return commit
