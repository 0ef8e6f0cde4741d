from __future__ import annotations

from typing import Final

# (latitude, longitude) per district, grouped by division.
DISTRICT_COORDINATES: Final[dict[str, tuple[float, float]]] = {
    # Barisal
    "Barguna": (22.1500, 90.1167),
    "Barisal": (22.7010, 90.3535),
    "Bhola": (22.6859, 90.6482),
    "Jhalokati": (22.6406, 90.1987),
    "Patuakhali": (22.3596, 90.3299),
    "Pirojpur": (22.5841, 89.9720),
    # Chittagong
    "Bandarban": (22.1953, 92.2184),
    "Brahmanbaria": (23.9571, 91.1119),
    "Chandpur": (23.2333, 90.6713),
    "Chittagong": (22.3569, 91.7832),
    "Comilla": (23.4607, 91.1809),
    "Cox's Bazar": (21.4272, 92.0058),
    "Feni": (23.0159, 91.3976),
    "Khagrachari": (23.1193, 91.9847),
    "Lakshmipur": (22.9447, 90.8282),
    "Noakhali": (22.8696, 91.0995),
    "Rangamati": (22.6533, 92.1789),
    # Dhaka
    "Dhaka": (23.8103, 90.4125),
    "Faridpur": (23.6071, 89.8429),
    "Gazipur": (23.9999, 90.4203),
    "Gopalganj": (23.0050, 89.8266),
    "Kishoreganj": (24.4449, 90.7766),
    "Madaripur": (23.1641, 90.1896),
    "Manikganj": (23.8644, 90.0047),
    "Munshiganj": (23.5422, 90.5305),
    "Narayanganj": (23.6238, 90.5000),
    "Narsingdi": (23.9322, 90.7150),
    "Rajbari": (23.7574, 89.6444),
    "Shariatpur": (23.2423, 90.4348),
    "Tangail": (24.2513, 89.9167),
    # Khulna
    "Bagerhat": (22.6516, 89.7859),
    "Chuadanga": (23.6402, 88.8418),
    "Jessore": (23.1664, 89.2081),
    "Jhenaidah": (23.5450, 89.1726),
    "Khulna": (22.8456, 89.5403),
    "Kushtia": (23.9013, 89.1204),
    "Magura": (23.4855, 89.4198),
    "Meherpur": (23.7622, 88.6318),
    "Narail": (23.1725, 89.5127),
    "Satkhira": (22.7185, 89.0705),
    # Mymensingh
    "Jamalpur": (24.9375, 89.9372),
    "Mymensingh": (24.7471, 90.4203),
    "Netrokona": (24.8709, 90.7279),
    "Sherpur": (25.0205, 90.0153),
    # Rajshahi
    "Bogra": (24.8465, 89.3773),
    "Chapainawabganj": (24.5965, 88.2775),
    "Joypurhat": (25.0968, 89.0227),
    "Naogaon": (24.7936, 88.9318),
    "Natore": (24.4206, 89.0003),
    "Pabna": (24.0064, 89.2372),
    "Rajshahi": (24.3745, 88.6042),
    "Sirajganj": (24.4534, 89.7007),
    # Rangpur
    "Dinajpur": (25.6217, 88.6354),
    "Gaibandha": (25.3288, 89.5285),
    "Kurigram": (25.8054, 89.6362),
    "Lalmonirhat": (25.9923, 89.2847),
    "Nilphamari": (25.9318, 88.8560),
    "Panchagarh": (26.3411, 88.5542),
    "Rangpur": (25.7439, 89.2752),
    "Thakurgaon": (26.0336, 88.4616),
    # Sylhet
    "Habiganj": (24.3840, 91.4169),
    "Moulvibazar": (24.4829, 91.7774),
    "Sunamganj": (25.0658, 91.3950),
    "Sylhet": (24.8949, 91.8687),
}

BANGLADESH_DISTRICTS: Final[list[str]] = list(DISTRICT_COORDINATES)

DEFAULT_DISTRICT: Final[str] = "Dhaka"

# Hijri-month jobs only learn the real day count from the first response.
HIJRI_MONTH_APPROX_DAYS: Final[int] = 30


def is_valid_district(value: str) -> bool:
    return value in DISTRICT_COORDINATES
