"""SSM client for reading secrets from AWS Parameter Store."""

import boto3
from botocore.exceptions import ClientError

DEFAULT_REGION = "eu-west-2"


class SSMClient:
    """SSM client for reading key passwords and PEM material."""

    def __init__(self, region: str = DEFAULT_REGION) -> None:
        """Initialize SSM client.

        Args:
            region: AWS region for SSM client
        """
        self.client = boto3.client("ssm", region_name=region)

    def get_parameter_value(self, name: str, with_decryption: bool = True) -> str:
        """Fetch a single parameter value from SSM.

        Args:
            name: Full parameter name (e.g., '/apigw-mtls/sandbox/tls/key-password')
            with_decryption: Decrypt SecureString parameters

        Returns:
            Parameter value as stored

        Raises:
            ValueError: If the parameter does not exist
        """
        try:
            response = self.client.get_parameter(
                Name=name, WithDecryption=with_decryption
            )
            return response["Parameter"]["Value"]

        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "ParameterNotFound":
                raise ValueError(f"Parameter not found in SSM: {name}") from e
            raise
