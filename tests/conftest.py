"""共享 fixtures"""

import itertools

import pytest
from django.utils import timezone

from arpa.models import Patient


@pytest.fixture
def today():
    return timezone.localdate()


@pytest.fixture
def make_patient(db):
    counter = itertools.count(1)

    def _make(**kwargs):
        n = next(counter)
        fields = {
            "uic": f"UIC{n:05d}",
            "first_name": "Test",
            "last_name": f"Patient{n}",
        }
        fields.update(kwargs)
        return Patient.objects.create(**fields)

    return _make


@pytest.fixture
def patient(make_patient):
    return make_patient(first_name="John", last_name="Smith")
