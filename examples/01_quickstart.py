#!/usr/bin/env python3
"""Example: Quickstart

Issues a credential from the configured cheqd issuer DID, delivers it to a
Verida inbox when the subject is a did:vda identifier, and verifies it.

Usage:
    export ISSUER_ID=did:cheqd:testnet:...
    export NETWORK_RPC_URL=... COSMOS_PAYER_MNEMONIC=...
    export VERIDA_APP_NAME=... VERIDA_ACCOUNT_KEY=... VERIDA_CHAIN_KEY=...
    python examples/01_quickstart.py did:vda:testnet:0x...

Requirements:
    pip install credential-agent
"""
from __future__ import annotations

import asyncio
import sys

import credential_agent
from credential_agent import Agent, AgentConfig


async def main(subject_did: str) -> None:
    print(f"credential-agent version: {credential_agent.__version__}")

    async with Agent.from_config(AgentConfig.from_env()) as agent:
        # Step 1: Issue
        result = await agent.issue_credential(
            {
                "subjectDid": subject_did,
                "type": ["MembershipCredential"],
                "attributes": {"membership": "gold"},
                "credentialName": "Membership",
            }
        )
        print(f"Issued by: {result.credential.issuer.id}")
        print(f"Delivery: {result.delivery.state.value} ({result.delivery.reason or 'ok'})")

        # Step 2: Verify
        verification = await agent.verify_credential(result.credential)
        print(f"Verified: {verification.verified}")

    print("\nQuickstart complete.")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "did:vda:testnet:0x0"))
