import os
from decimal import Decimal

from django.core.management.base import BaseCommand
from guesthouse.models import GuestHouseSettings, Room


class Command(BaseCommand):
    help = 'Populate database with sample guest house rooms and payment settings'

    def handle(self, *args, **options):
        # Create rooms
        rooms_data = [
            {
                'name': 'Budget Single',
                'room_type': Room.RoomType.SINGLE,
                'price_per_night': Decimal('100'),
                'capacity': 1,
                'floor': 3,
                'description': 'Affordable single room with all essential amenities',
                'amenities': ['Wi-Fi', 'Fan', 'Shared Bathroom', 'Locker'],
            },
            {
                'name': 'Standard Single',
                'room_type': Room.RoomType.SINGLE,
                'price_per_night': Decimal('150'),
                'capacity': 1,
                'floor': 1,
                'description': 'Cozy single room with a work desk, for solo travelers',
                'amenities': ['Wi-Fi', 'Air Conditioning', 'TV', 'Private Bathroom', 'Work Desk'],
            },
            {
                'name': 'Deluxe Double',
                'room_type': Room.RoomType.DOUBLE,
                'price_per_night': Decimal('200'),
                'capacity': 2,
                'floor': 1,
                'description': 'Spacious double room with a queen-size bed',
                'amenities': ['Wi-Fi', 'Air Conditioning', 'TV', 'Private Bathroom', 'Mini Fridge', 'Balcony'],
            },
            {
                'name': 'Premium Deluxe',
                'room_type': Room.RoomType.DELUXE,
                'price_per_night': Decimal('250'),
                'capacity': 2,
                'floor': 2,
                'description': 'Deluxe room with panoramic views',
                'amenities': ['Wi-Fi', 'Air Conditioning', 'Smart TV', 'Private Bathroom', 'Mini Bar', 'Room Service'],
            },
            {
                'name': 'Executive Suite',
                'room_type': Room.RoomType.SUITE,
                'price_per_night': Decimal('350'),
                'capacity': 2,
                'floor': 2,
                'description': 'Suite with separate living area and king-size bed',
                'amenities': ['Wi-Fi', 'Air Conditioning', 'Smart TV', 'Private Bathroom', 'Mini Bar', 'City View'],
            },
            {
                'name': 'Family Room',
                'room_type': Room.RoomType.SUITE,
                'price_per_night': Decimal('400'),
                'capacity': 4,
                'floor': 3,
                'description': 'Two queen beds, for families traveling together',
                'amenities': ['Wi-Fi', 'Air Conditioning', 'TV', 'Private Bathroom', 'Mini Fridge', 'Sofa'],
            },
        ]

        for room_data in rooms_data:
            room, created = Room.objects.get_or_create(
                name=room_data['name'],
                defaults=room_data
            )

            if created:
                self.stdout.write(f'Created room: {room.name} - {room.room_type}')
            else:
                self.stdout.write(f'Room {room.name} already exists')

        if GuestHouseSettings.current() is None:
            GuestHouseSettings.objects.create(
                payment_account_number=os.getenv('GUESTHOUSE_PAYMENT_ACCOUNT', '0240000000'),
                payment_account_name=os.getenv('GUESTHOUSE_PAYMENT_NAME', 'Guest House'),
            )
            self.stdout.write('Created payment settings')

        self.stdout.write(
            self.style.SUCCESS('Successfully populated database with sample data')
        )
