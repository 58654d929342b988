"""
Statik kategori tabloları

Bağlantı yokken veya canlı kategori çekimi başarısız olduğunda kullanılır.
Amazon SP-API kategori endpoint'i sunmadığı için Amazon her zaman bu tabloyu kullanır.
Tablolar değiştiğinde VERSION artırılır.
"""
from typing import Dict, List

from app.models import CategoryNode
from services.category_tree import tree_from_nested

VERSION = "2024.1"

GENERIC_CATEGORIES = [
    {"id": "1", "name": "Giyim & Aksesuar", "children": [
        {"id": "1-1", "name": "Kadın Giyim", "children": [
            {"id": "1-1-1", "name": "Elbiseler"},
            {"id": "1-1-2", "name": "Üstler"},
            {"id": "1-1-3", "name": "Pantolonlar"},
        ]},
        {"id": "1-2", "name": "Erkek Giyim", "children": [
            {"id": "1-2-1", "name": "Gömlekler"},
            {"id": "1-2-2", "name": "Pantolonlar"},
        ]},
    ]},
    {"id": "2", "name": "Ev & Yaşam", "children": [
        {"id": "2-1", "name": "Mobilya"},
        {"id": "2-2", "name": "Dekorasyon"},
        {"id": "2-3", "name": "Mutfak"},
    ]},
    {"id": "3", "name": "Elektronik", "children": [
        {"id": "3-1", "name": "Telefon & Aksesuar"},
        {"id": "3-2", "name": "Bilgisayar"},
        {"id": "3-3", "name": "Ses Sistemleri"},
    ]},
]

AMAZON_CATEGORIES = [
    {"id": "electronics", "name": "Elektronik", "children": [
        {"id": "computers", "name": "Bilgisayar ve Aksesuarlar", "children": [
            {"id": "laptops", "name": "Dizüstü Bilgisayarlar"},
            {"id": "desktops", "name": "Masaüstü Bilgisayarlar"},
            {"id": "monitors", "name": "Monitörler"},
        ]},
        {"id": "phones", "name": "Cep Telefonları", "children": [
            {"id": "smartphones", "name": "Akıllı Telefonlar"},
            {"id": "cases", "name": "Kılıflar"},
        ]},
    ]},
    {"id": "fashion", "name": "Moda", "children": [
        {"id": "mens", "name": "Erkek Giyim", "children": [
            {"id": "mens-shirts", "name": "Gömlekler"},
            {"id": "mens-pants", "name": "Pantolonlar"},
        ]},
        {"id": "womens", "name": "Kadın Giyim", "children": [
            {"id": "womens-dresses", "name": "Elbiseler"},
            {"id": "womens-tops", "name": "Üstler"},
        ]},
    ]},
    {"id": "home", "name": "Ev ve Yaşam", "children": [
        {"id": "kitchen", "name": "Mutfak", "children": [
            {"id": "cookware", "name": "Pişirme Gereçleri"},
            {"id": "appliances", "name": "Küçük Ev Aletleri"},
        ]},
        {"id": "furniture", "name": "Mobilya", "children": [
            {"id": "chairs", "name": "Sandalyeler"},
            {"id": "tables", "name": "Masalar"},
        ]},
    ]},
    {"id": "beauty", "name": "Güzellik ve Kişisel Bakım", "children": [
        {"id": "skincare", "name": "Cilt Bakımı"},
        {"id": "makeup", "name": "Makyaj"},
        {"id": "haircare", "name": "Saç Bakımı"},
    ]},
]

FALLBACK_TABLES: Dict[str, List[dict]] = {
    "default": GENERIC_CATEGORIES,
    "amazon": AMAZON_CATEGORIES,
}


def fallback_tree(marketplace: str = "default") -> List[CategoryNode]:
    """Her çağrıda yeni ağaç üretir; dönen düğümler güvenle değiştirilebilir"""
    table = FALLBACK_TABLES.get(marketplace, GENERIC_CATEGORIES)
    return tree_from_nested(table)
