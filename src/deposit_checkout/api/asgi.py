"""ASGI entrypoint for the deposit checkout API."""

from deposit_checkout.api.app import create_app
from deposit_checkout.containers import build_container

app = create_app(build_container())
