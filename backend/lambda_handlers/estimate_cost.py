"""
Lambda function to quote a tiered electricity cost
Triggered by API Gateway
"""
import json
import os

from backend.lib.plugsave_core.tariff import TariffCalculator

TABLE_NAME = os.getenv('DYNAMODB_TABLE_NAME', 'Devices')

calculator = TariffCalculator(currency=os.getenv('TARIFF_CURRENCY', 'SAR'))


def lambda_handler(event, context, store=None):
    """
    Quote the tiered cost for a usage figure or for a device's counters.

    Query parameters (one of):
    - usage: monthly kWh to quote
    - device_id: quote the device's monthly_usage (daily cost included)
    """
    print(f"Received event: {json.dumps(event)}")

    try:
        params = event.get('queryStringParameters') or {}
        device_id = params.get('device_id')

        if device_id:
            if store is None:
                from backend.lib.dynamodb_service import DynamoDBService
                store = DynamoDBService(TABLE_NAME)
            device = store.get_device(device_id)
            if not device:
                return response(404, {'error': f'Device not found: {device_id}'})

            daily = float(device.get('daily_usage') or 0)
            monthly = float(device.get('monthly_usage') or 0)
            body = calculator.quote(monthly)
            body['device_id'] = device_id
            body['daily_cost'] = calculator.quote(daily)['cost']
            return response(200, body)

        if 'usage' not in params:
            return response(400, {'error': 'usage or device_id is required'})

        try:
            usage = float(params['usage'])
        except (TypeError, ValueError):
            return response(400, {'error': 'usage must be a number'})

        return response(200, calculator.quote(usage))

    except Exception as e:
        print(f"Error: {str(e)}")
        return response(500, {'error': str(e)})


def response(status_code: int, body: dict) -> dict:
    """Create API Gateway response."""
    return {
        'statusCode': status_code,
        'headers': {
            'Content-Type': 'application/json',
            'Access-Control-Allow-Origin': '*',
            'Access-Control-Allow-Methods': 'GET,POST,OPTIONS',
            'Access-Control-Allow-Headers': 'Content-Type'
        },
        'body': json.dumps(body)
    }
