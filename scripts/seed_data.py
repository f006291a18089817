#!/usr/bin/env python3
"""
Seed script — creates a realistic dataset for trying out the wish wall.

Creates:
  • 8 users (the first one is listed in ADMIN_EMAILS if you want an admin)
  • 3 wishes per user, two public and one private
  • Random likes across public wishes

Run after the API is up:
  python scripts/seed_data.py --api-url http://localhost:8000
"""
import argparse
import asyncio
import random

from wishwall.sdk.client import WishWallClient, WishWallError


BASE_USERS = [
    ("amira@example.com", "Amira Ben Salah", "Tunis"),
    ("youssef@example.com", "Youssef Trabelsi", "Sfax"),
    ("leila@example.com", "Leila Haddad", "Sousse"),
    ("karim@example.com", "Karim Jaziri", "Bizerte"),
    ("nour@example.com", "Nour Mansouri", "Nabeul"),
    ("sami@example.com", "Sami Gharbi", ""),
    ("ines@example.com", "Ines Chaabane", "Monastir"),
    ("omar@example.com", "Omar Ferchichi", "Gabes"),
]

SAMPLE_WISHES = [
    ("Run a marathon", "Train every week and finish my first full marathon before summer."),
    ("Learn to cook", "Master my grandmother's couscous recipe and host a family dinner."),
    ("Travel north", "Take the train along the coast and visit every town on the way."),
    ("Read more", "Finish one book a month and start a small reading club with friends."),
    ("Plant a garden", "Grow tomatoes, mint and peppers on the balcony this spring."),
    ("New language", "Hold a ten minute conversation in Spanish by the end of the year."),
    ("Health first", "Sleep eight hours, drink more water and walk every evening."),
    ("Start a project", "Build the small app I keep talking about and ship it to friends."),
    ("Volunteer", "Give one Saturday a month to the local animal shelter."),
    ("Save up", "Put a little aside every month for a trip to the Sahara."),
]

PASSWORD = "wishwall-demo"


async def wait_for_api(client: WishWallClient, retries: int = 15) -> None:
    print(f"Waiting for API at {client.base_url} ...")
    for _ in range(retries):
        try:
            resp = await client.http.get("/health")
            if resp.status_code == 200 and resp.json().get("status") == "ok":
                print("  API is ready!\n")
                return
        except Exception:
            pass
        await asyncio.sleep(3)
    raise RuntimeError(f"API not reachable at {client.base_url} after {retries} retries")


async def main(api_url: str) -> None:
    clients: list[WishWallClient] = []
    async with WishWallClient(api_url) as probe:
        await wait_for_api(probe)

    try:
        # ── Create users ─────────────────────────────────────────────────
        print("Creating users...")
        for email, full_name, city in BASE_USERS:
            client = WishWallClient(api_url)
            try:
                await client.sign_up(email, PASSWORD, full_name, city)
            except WishWallError as exc:
                if exc.status_code != 409:
                    print(f"  ✗ Failed to create {email}: {exc.message}")
                    await client.aclose()
                    continue
                await client.sign_in(email, PASSWORD)
            clients.append(client)
            print(f"  ✓ {email} ({client.session.user_id})")

        if not clients:
            print("No users created — aborting")
            return

        # ── Create wishes ─────────────────────────────────────────────────
        print("\nCreating wishes...")
        public_ids: list[str] = []
        for client in clients:
            for i, (title, content) in enumerate(random.sample(SAMPLE_WISHES, k=3)):
                wish = await client.create_wish(title, content, is_public=i < 2)
                if wish.is_public:
                    public_ids.append(wish.id)
        print(f"  ✓ {len(clients) * 3} wishes created ({len(public_ids)} public)")

        # ── Create some likes ─────────────────────────────────────────────
        print("\nAdding likes...")
        likes = 0
        for wish_id in public_ids:
            for client in random.sample(clients, k=random.randint(0, min(5, len(clients)))):
                try:
                    await client.like(wish_id)
                    likes += 1
                except WishWallError as exc:
                    print(f"  like failed: {exc.message}")
        print(f"  ✓ {likes} likes added")
    finally:
        for client in clients:
            await client.aclose()

    # ── Print summary ─────────────────────────────────────────────────────
    print("\n" + "=" * 60)
    print("Seed complete! Things to try:\n")
    print(f"  curl -s '{api_url}/wishes/public' | python3 -m json.tool")
    print(f"  curl -N '{api_url}/realtime/wishes/public'")
    print(f"\nSign in as any seeded user with password '{PASSWORD}'.")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the wish wall")
    parser.add_argument("--api-url", default="http://localhost:8000", help="API base URL")
    args = parser.parse_args()
    asyncio.run(main(args.api_url))
