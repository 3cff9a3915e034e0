"""
Simple script to validate a workflow file.

Usage:
    python validate_workflow.py flows/login_and_capture.yaml
"""

import sys
import logging

from actions import action_name
from workflow_errors import InvalidWorkflowError
from workflow_loader import load_workflow, validate_workflow
from workflow_models import NodeKind

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def main():
    if len(sys.argv) < 2:
        print("Usage: python validate_workflow.py <workflow_file>")
        sys.exit(1)

    workflow_file = sys.argv[1]

    try:
        logger.info(f"Loading workflow: {workflow_file}")
        workflow = load_workflow(workflow_file)

        logger.info("✓ Workflow loaded successfully")
        logger.info(f"  Nodes: {len(workflow.nodes)}")
        for node in workflow.nodes:
            if node.kind in (NodeKind.ACTION, NodeKind.TASK):
                logger.info(f"    - {node.id} ({node.type}): {action_name(node.properties, node.type)}")
            else:
                logger.info(f"    - {node.id} ({node.type})")
        logger.info(f"  Edges: {len(workflow.edges)}")

        browser = workflow.browser_hint()
        logger.info(f"  Browser: {browser or 'default'}")

        warnings = validate_workflow(workflow)
        if warnings:
            logger.warning("Validation warnings:")
            for warning in warnings:
                logger.warning(f"  - {warning}")
        else:
            logger.info("✓ No validation warnings")

        logger.info("")
        logger.info("Workflow is valid and ready to use!")
        logger.info(f"Run with: python run_workflow.py {workflow_file}")

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        sys.exit(1)
    except InvalidWorkflowError as e:
        logger.error(f"Invalid workflow: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
