#!/usr/bin/env python3
# cdk deploy -c database_url=postgresql+psycopg2://... [-c product_service_url=...] [-c env=prod]
import aws_cdk as cdk
from xyz_orders_stack import XyzOrdersStack

app = cdk.App()
env_name = app.node.try_get_context("env") or "dev"

XyzOrdersStack(
    app,
    f"XyzOrders{env_name.capitalize()}",
    env=cdk.Environment(
        account=app.node.try_get_context("account"),
        region=app.node.try_get_context("region") or "us-east-1",
    ),
)

app.synth()
