"""Pinata IPFS client for storing source and enhanced photos."""

import json

import httpx

from pixelift.services.exceptions import FetchError, StorageError


class PinataBlobStore:
    """Object store backed by the Pinata pinning service.

    References are gateway URLs (``https://<gateway>/ipfs/<CID>``).
    """

    def __init__(
        self,
        jwt_token: str,
        gateway_domain: str = "gateway.pinata.cloud",
        timeout: float = 30.0,
    ):
        """Initialize Pinata client.

        Args:
            jwt_token: Pinata API JWT token (from PINATA_JWT env var)
            gateway_domain: Gateway domain for URL generation (default: public gateway)
            timeout: Per-request timeout in seconds
        """
        self.jwt_token = jwt_token
        self.gateway_domain = gateway_domain
        self.timeout = timeout
        self.base_url = "https://api.pinata.cloud"
        self.headers = {"Authorization": f"Bearer {jwt_token}"}

    async def put(self, data: bytes, filename: str, content_type: str) -> str:
        """Pin file bytes to IPFS.

        Args:
            data: File content
            filename: Name shown in the Pinata dashboard (e.g. "<photo_id>-enhanced.jpg")
            content_type: MIME type of the file

        Returns:
            Gateway URL of the pinned file

        Raises:
            StorageError: Network failure, auth failure, rate limit or bad response
        """
        if not self.jwt_token:
            raise StorageError("PINATA_JWT not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/pinning/pinFileToIPFS",
                    headers=self.headers,
                    files={"file": (filename, data, content_type)},
                    data={
                        "pinataOptions": '{"cidVersion": 1}',
                        "pinataMetadata": json.dumps({"name": filename}),
                    },
                )

                if response.status_code == 429:
                    raise StorageError(f"Rate limit exceeded: {response.text}")
                elif response.status_code in (401, 403):
                    raise StorageError(
                        f"Pinata rejected credentials ({response.status_code}). "
                        "Check PINATA_JWT configuration in .env file."
                    )
                elif response.status_code >= 400:
                    raise StorageError(
                        f"Upload failed ({response.status_code}): {response.text}"
                    )

                cid = response.json()["IpfsHash"]

        except httpx.TimeoutException as e:
            raise StorageError(f"Request timeout after {self.timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise StorageError(f"Network error: {e}") from e
        except (KeyError, ValueError) as e:
            raise StorageError(f"Unexpected response from Pinata: {e}") from e

        return self.get_gateway_url(cid)

    async def get(self, ref: str) -> bytes:
        """Download file bytes by reference.

        Args:
            ref: Gateway URL returned by put()

        Returns:
            File content

        Raises:
            FetchError: Network failure, non-2xx response or empty body
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(ref)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"Failed to fetch image ({e.response.status_code}): {ref}"
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to fetch image: {e}") from e

        if not response.content:
            raise FetchError(f"Fetched image is empty: {ref}")
        return response.content

    def get_gateway_url(self, cid: str) -> str:
        """Convert CID to gateway URL for browser access.

        Args:
            cid: IPFS CID

        Returns:
            Gateway URL (e.g., "https://gateway.pinata.cloud/ipfs/<CID>")
        """
        return f"https://{self.gateway_domain}/ipfs/{cid}"
