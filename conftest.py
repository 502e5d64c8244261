"""
Pytest bootstrap: settings are read at import time, so the test
environment has to be in place before the app modules are imported.
Fixtures live in tests/conftest.py.
"""
import os

os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("JWT_SECRET", "test-secret")
