"""Example loading a workflow definition from a YAML or JSON file."""

import asyncio
import sys

from stepwise import DefinitionParser, WorkflowEngine


async def main():
    definition = DefinitionParser().parse_file(sys.argv[1])
    engine = WorkflowEngine()
    workflow_id = await engine.start(None, definition)

    instance = await engine.get_instance(workflow_id)
    print(f"{definition.name}: {instance.state.label} ({instance.progress}%)")


if __name__ == "__main__":
    asyncio.run(main())
