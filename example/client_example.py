import asyncio
import time

from x402_facilitator.adapters.evm.constants import USDC_MAINNET
from x402_facilitator.adapters.evm.signatures import build_payment_payload, sign_erc3009_authorization
from x402_facilitator.clients import FacilitatorClient
from x402_facilitator.schemas.https import PaymentRequirements, VerifyRequest

payer_pk = "0xxxx"  # Replace with the payer's key
pay_to = "0x209693Bc6afc0C5328bA36FaF03C514EF312287C"


async def main():
    now = int(time.time())
    exact = sign_erc3009_authorization(
        private_key=payer_pk,
        recipient=pay_to,
        value=10_000,  # 0.01 USDC
        valid_after=now - 60,
        valid_before=now + 600,
    )
    request = VerifyRequest(
        paymentPayload=build_payment_payload(exact, USDC_MAINNET),
        paymentRequirements=PaymentRequirements(
            scheme="exact",
            network=USDC_MAINNET.caip2,
            amount="10000",
            asset=USDC_MAINNET.address,
            payTo=pay_to,
            extra={"name": USDC_MAINNET.name, "version": USDC_MAINNET.version},
        ),
    )

    async with FacilitatorClient("http://localhost:8000", timeout_ms=30_000) as client:
        verdict = await client.verify(request)
        print("Verify:", verdict.model_dump())
        if not verdict.isValid:
            return None
        return await client.settle(request)


if __name__ == "__main__":
    outcome = asyncio.run(main())
    print("Settle:", outcome.model_dump() if outcome else None)
