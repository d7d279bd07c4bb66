"""Pytest configuration and shared fixtures."""

import random

import pandas as pd
import pytest


@pytest.fixture
def rng():
    """Seeded random source for reproducible sampling."""
    return random.Random(12345)


@pytest.fixture
def chain_graph():
    """Three-control chain A -> B -> C with unit-strength edges."""
    nodes = [
        {"id": "A", "name": "Identity provider", "failure_probability": 0.5},
        {"id": "B", "name": "MFA enforcement", "failure_probability": 0.0},
        {"id": "C", "name": "Privileged access review", "failure_probability": 0.0},
    ]
    edges = [
        {"parent_id": "A", "child_id": "B", "strength": 1.0},
        {"parent_id": "B", "child_id": "C", "strength": 1.0},
    ]
    return nodes, edges


@pytest.fixture
def control_graph():
    """Small control registry with a shared upstream dependency."""
    nodes = [
        {"id": "iam", "name": "IAM baseline", "pass_rate": 90, "category": "access"},
        {"id": "mfa", "name": "MFA", "pass_rate": 95, "category": "access"},
        {"id": "logging", "name": "Audit logging", "pass_rate": 80, "category": "detect"},
        {"id": "siem", "name": "SIEM alerting", "pass_rate": 85, "category": "detect"},
        {"id": "pam", "name": "Privileged access", "pass_rate": 70, "category": "access"},
    ]
    edges = [
        {"parent_id": "iam", "child_id": "mfa", "strength": 0.8, "type": "functional"},
        {"parent_id": "iam", "child_id": "pam", "strength": 0.6, "type": "functional"},
        {"parent_id": "logging", "child_id": "siem", "strength": 0.9, "type": "data"},
        {"parent_id": "mfa", "child_id": "pam", "strength": 0.5, "type": "operational"},
    ]
    return nodes, edges


@pytest.fixture
def sample_controls_df():
    """Control evidence table for DataFrame integration."""
    return pd.DataFrame(
        {
            "control_id": ["c1", "c2", "c3"],
            "passes": [94, 10, None],
            "failures": [6, 40, 0],
            "industry": ["financial_services", "retail", None],
        }
    )
