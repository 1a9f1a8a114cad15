"""Example running a branching order workflow against SQLite."""

import asyncio
import logging
import sys

from stepwise import ActionResult, BaseAction, WorkflowBuilder, WorkflowEngine, default_registry
from stepwise.persistence import get_repository


class ReserveStock(BaseAction):
    async def handle(self, context):
        return ActionResult.success({"reserved": context.get("order.items", 0)})


async def main():
    logging.basicConfig(level=logging.INFO)
    database_url = sys.argv[1] if len(sys.argv) > 1 else "sqlite://orders.db"

    registry = default_registry()
    registry.register("reserve_stock", ReserveStock)

    definition = (
        WorkflowBuilder.create("order-processing")
        .add_step("reserve", "reserve_stock", compensation="log")
        .add_step("review", "log", {"message": "Manual review for {{ order.id }}"}, link=False)
        .add_step("ship", "log", {"message": "Shipping {{ order.id }}"}, link=False)
        .transition("reserve", "review", "order.total > 1000")
        .transition("reserve", "ship")
        .transition("review", "ship")
        .build()
    )

    engine = WorkflowEngine(repository=get_repository(database_url), registry=registry)
    workflow_id = await engine.start(None, definition, {"order": {"id": "A-1", "total": 1500, "items": 3}})
    print(await engine.get_status(workflow_id))


if __name__ == "__main__":
    asyncio.run(main())
