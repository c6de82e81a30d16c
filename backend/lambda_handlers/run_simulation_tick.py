"""
Lambda function to run one consumption simulation tick
Can be triggered by EventBridge/CloudWatch schedules or API Gateway
"""
import json
import os

from backend.lib.plugsave_core.simulator import ConsumptionSimulator, SimulationSettings

TABLE_NAME = os.getenv('DYNAMODB_TABLE_NAME', 'Devices')
INTERVAL_MS = int(os.getenv('SIMULATION_INTERVAL_MS', '2000'))


def lambda_handler(event, context, store=None, notifier=None):
    """
    Advance the counters of one account's powered-on devices.

    The owner comes from:
    - event['owner_id'] (scheduled rule with a constant input), or
    - queryStringParameters['owner_id'] (API Gateway)

    Every invocation is an independent simulator: concurrent invocations
    for the same owner are not coordinated.
    """
    print(f"Received event: {json.dumps(event)}")

    try:
        params = event.get('queryStringParameters') or {}
        owner_id = event.get('owner_id') or params.get('owner_id')
        if not owner_id:
            return response(400, {'error': 'owner_id is required'})

        if store is None:
            from backend.lib.dynamodb_service import DynamoDBService
            store = DynamoDBService(TABLE_NAME)

        if notifier is None and os.getenv('SNS_TOPIC_ARN'):
            from backend.lib.sns_service import SNSService
            notifier = SNSService()

        simulator = ConsumptionSimulator(
            store,
            lambda: owner_id,
            settings=SimulationSettings(interval_ms=INTERVAL_MS)
        )
        if notifier is not None:
            simulator.add_shutoff_listener(notifier.on_shutoff)

        report = simulator.force_update()
        return response(200, report.to_dict())

    except Exception as e:
        print(f"Error: {str(e)}")
        return response(500, {'error': str(e)})


def response(status_code: int, body: dict) -> dict:
    """Create API Gateway response."""
    return {
        'statusCode': status_code,
        'headers': {
            'Content-Type': 'application/json',
            'Access-Control-Allow-Origin': '*'
        },
        'body': json.dumps(body)
    }
