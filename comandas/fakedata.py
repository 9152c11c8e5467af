"""
Send fake restaurant orders to the intake API to watch the kitchen display
and the change feed react in real time.

    python fakedata.py            # one order every 1-3 seconds
    python fakedata.py burst      # concurrent batches, some with repeated idempotency keys
"""
import random
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed

import requests
from faker import Faker

fake = Faker('es_AR')

API_URL = "http://localhost:8000/orders/"

NUM_MESSAGES = 50
NUM_WORKERS = 10
BATCH_SIZE = 20
DUPLICATE_RATE = 0.1  # share of burst requests that reuse an idempotency key

PRODUCTS = ['Clásica', 'Cheese', 'Bacon', 'Doble Cheddar', 'Veggie', 'Crispy']
SIZES = ['simple', 'doble', 'triple']
ADDITIONS = ['cheddar', 'bacon', 'huevo', 'cebolla caramelizada']
REMOVALS = ['pepino', 'cebolla', 'tomate', 'lechuga']
EXTRAS = [('Papas grandes', 3500), ('Coca-Cola', 2000), ('Aros de cebolla', 4000)]


def fake_order():
    items = []
    for _ in range(random.randint(1, 4)):
        items.append({
            "product": random.choice(PRODUCTS),
            "quantity": random.randint(1, 3),
            "size": random.choice(SIZES),
            "combo": random.random() < 0.5,
            "additions": random.sample(ADDITIONS, k=random.randint(0, 2)),
            "removals": random.sample(REMOVALS, k=random.randint(0, 1)),
            "observations": fake.sentence(nb_words=4) if random.random() < 0.2 else "",
        })
    extras = [
        {"name": name, "quantity": 1, "price": price}
        for name, price in random.sample(EXTRAS, k=random.randint(0, 2))
    ]
    amount = sum(random.choice([8500, 9500, 11000]) * item["quantity"] for item in items)
    amount += sum(extra["price"] for extra in extras)

    pickup = random.random() < 0.4
    if random.random() < 0.2:
        half = amount // 2
        payment = [{"method": "transferencia", "amount": half}, {"method": "efectivo", "amount": amount - half}]
    else:
        payment = random.choice(["efectivo", "transferencia", "link de pago"])

    data = {
        "customer_name": fake.first_name(),
        "phone": fake.phone_number() if random.random() < 0.8 else None,
        "items": items,
        "extras": extras,
        "amount": amount,
        "payment_method": payment,
        "pickup": pickup,
        "delivery_address": None if pickup else fake.street_address(),
    }
    if not pickup and payment == "efectivo":
        tendered = (amount // 10000 + 1) * 10000
        data["cash_tendered"] = tendered
        data["change_due"] = tendered - amount
    return data


def send_order(request_id, idempotency_key=None):
    headers = {"X-Idempotency-Key": idempotency_key} if idempotency_key else {}
    start_time = time.time()
    try:
        response = requests.post(API_URL, json=fake_order(), headers=headers, timeout=10)
        elapsed = time.time() - start_time
        body = response.json()
        print(f"✅ Request #{request_id}: {response.status_code} - {elapsed:.3f}s - #{body.get('order_number', '-')}")
        return response.status_code in (200, 201)
    except Exception as e:
        print(f"❌ Request #{request_id}: ERROR - {e}")
        return False


def trickle():
    for request_id in range(1, NUM_MESSAGES + 1):
        send_order(request_id)
        time.sleep(random.uniform(1, 3))


def burst():
    keys = []
    ok = 0
    started = time.time()
    with ThreadPoolExecutor(max_workers=NUM_WORKERS) as executor:
        futures = []
        for request_id in range(1, NUM_MESSAGES + 1):
            if keys and random.random() < DUPLICATE_RATE:
                key = random.choice(keys)
            else:
                key = f"req-{request_id}-{int(time.time())}"
                keys.append(key)
            futures.append(executor.submit(send_order, request_id, key))
            if request_id % BATCH_SIZE == 0:
                time.sleep(3)
        for future in as_completed(futures):
            ok += future.result()

    elapsed = time.time() - started
    print(f"\n📊 {ok}/{NUM_MESSAGES} accepted in {elapsed:.2f}s ({NUM_MESSAGES / elapsed:.2f} req/s)")


if __name__ == '__main__':
    try:
        burst() if sys.argv[1:] == ['burst'] else trickle()
    except KeyboardInterrupt:
        print("\n⚠️  Interrupted by user")
