"""
=============================================================================
SNS SERVICE - Shutoff alerts via Amazon Simple Notification Service
=============================================================================

When the consumption simulator switches a device off because one of its
cost limits was reached, the owner gets an email through an SNS topic.

Flow:
    ConsumptionSimulator --(shutoff listener)--> SNSService.send_shutoff_alert
        --> SNS topic --> confirmed email subscribers

Subscribers must confirm the subscription email AWS sends them before
they receive anything.
=============================================================================
"""

# boto3 - AWS SDK for Python
import boto3

# ClientError - Exception class for AWS API errors
from botocore.exceptions import ClientError

import os

from typing import Optional


class SNSService:
    """
    Publishes device alerts to an SNS topic.

    Usage:
        sns = SNSService()
        sns.create_topic_if_not_exists()
        sns.subscribe_email("user@example.com")
        simulator.add_shutoff_listener(sns.on_shutoff)
    """

    def __init__(self, topic_arn: str = None):
        """
        Environment Variables Used:
        - SNS_TOPIC_ARN: The ARN of an existing topic
        - SNS_TOPIC_NAME: Name for creating a new topic (default PlugSaveAlerts)
        - AWS credentials (ACCESS_KEY, SECRET_KEY, SESSION_TOKEN)
        """
        self.topic_arn = topic_arn or os.getenv('SNS_TOPIC_ARN')
        self.topic_name = os.getenv('SNS_TOPIC_NAME', 'PlugSaveAlerts')
        self.region = os.getenv('AWS_REGION', 'us-east-1')
        self.currency = os.getenv('TARIFF_CURRENCY', 'SAR')

        session_token = os.getenv('AWS_SESSION_TOKEN')

        self.sns_client = boto3.client(
            'sns',
            region_name=self.region,
            aws_access_key_id=os.getenv('AWS_ACCESS_KEY_ID'),
            aws_secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY'),
            aws_session_token=session_token if session_token else None
        )

    def create_topic_if_not_exists(self) -> Optional[str]:
        """
        Create the SNS topic if needed and remember its ARN.

        create_topic is idempotent: for an existing name it returns the
        existing topic's ARN.
        """
        try:
            response = self.sns_client.create_topic(Name=self.topic_name)
            self.topic_arn = response['TopicArn']
            print(f"SNS topic ready: {self.topic_arn}")
            return self.topic_arn

        except ClientError as e:
            print(f"Failed to create SNS topic: {e}")
            return None

    def subscribe_email(self, email: str) -> Optional[str]:
        """
        Subscribe an email address to the alert topic.

        Returns:
            str: The subscription ARN ('pending confirmation' until the
                 user clicks the link in the AWS email), or None
        """
        if not self.topic_arn:
            print("No topic ARN configured")
            return None

        try:
            response = self.sns_client.subscribe(
                TopicArn=self.topic_arn,
                Protocol='email',
                Endpoint=email
            )
            return response['SubscriptionArn']

        except ClientError as e:
            print(f"Failed to subscribe email: {e}")
            return None

    def send_alert(self, subject: str, message: str) -> bool:
        """
        Publish a message to all topic subscribers.

        Args:
            subject: Email subject line (SNS allows max 100 characters)
            message: The message body

        Returns:
            bool: True if message was published successfully
        """
        if not self.topic_arn:
            print("No topic ARN configured")
            return False

        try:
            self.sns_client.publish(
                TopicArn=self.topic_arn,
                Subject=subject[:100],
                Message=message
            )
            return True

        except ClientError as e:
            print(f"Failed to send alert: {e}")
            return False

    def send_shutoff_alert(self, device_name: str, device_id: str, period: str,
                           limit: float, cost: float) -> bool:
        """
        Tell the owner a device was switched off by one of its cost limits.

        Example Email:
            Subject: Device turned off - Living room heater

            Device: Living room heater (dev-42)
            Limit: Daily cost limit of 5.00 SAR
            Cost so far: 5.04 SAR

            The device was turned off and the daily limit has been reset.
        """
        label = device_name or device_id
        subject = f"Device turned off - {label}"

        message = f"""
Plug&Save Cost Limit Reached

Device: {label} ({device_id})
Limit: {period.capitalize()} cost limit of {limit:.2f} {self.currency}
Cost so far: {cost:.2f} {self.currency}

The device was turned off and the {period} limit has been reset.
Turn it back on from the device page once you have reviewed its usage.

---
Plug&Save
        """.strip()

        return self.send_alert(subject, message)

    def on_shutoff(self, device, period: str, limit: float, cost: float) -> None:
        """Shutoff listener signature expected by ConsumptionSimulator."""
        self.send_shutoff_alert(device.name, device.id, period, limit, cost)
