"""Built-in seed data and a script to write it into a store.

A store that has never had its ``teachers`` slot written returns
:data:`SEED_TEACHERS`: two teachers with their rosters. The same data can be
materialised explicitly, for example before handing a fresh database to the
teachers, by running this module.

Usage:
    python seed.py [database-path-or-url]

"""

import sys
from typing import Dict

from models import Teacher


SEED_TEACHERS: Dict[str, Teacher] = {
    'eman': {
        'name': 'إيمان الصباغ',
        'code': 'eman',
        'password': 'eman2025',
        'email': 'ahmed@example.com',
        'students': [
            {'id': '31201261802388', 'name': 'أروى نصر الحسيني المزين'},
            {'id': '31112141802322', 'name': 'بسملة رضا جابر ساري'},
            {'id': '31203151804361', 'name': 'بسملة سعيد إسماعيل نوار'},
            {'id': '31210201800741', 'name': 'جنى إبراهيم أحمد الفاضلي'},
            {'id': '31110171800976', 'name': 'سعد محمود سعد عبد الرحيم'},
            {'id': '30905231802441', 'name': 'سمر سعد حسني الشاعر'},
            {'id': '31205031802805', 'name': 'ليلى سمارة محمود الحلو'},
            {'id': '31205101802344', 'name': 'بسملة محمد محمد الهنداوي'},
            {'id': '31008141800301', 'name': 'جنات رضا عبد النبي حيدر'},
            {'id': '31303161802728', 'name': 'خلود وائل نصر الفيومي'},
        ],
    },
    'samar': {
        'name': 'سمر الشاعر',
        'code': 'samar',
        'password': 'samar2025',
        'email': 'samar@example.com',
        'students': [
            {'id': '31309271801245', 'name': 'روان قطب إبراهيم أبوبكر'},
            {'id': '31206201801651', 'name': 'محمد رمضان محمد محمد ساري'},
            {'id': '31206211801161', 'name': 'مريم علي السيد نصر'},
            {'id': '30901011806327', 'name': 'إيمان محمد عبد الحميد الصباغ'},
            {'id': '31407171806209', 'name': 'آية محمود سعد عبد الرحيم'},
            {'id': '31111111800884', 'name': 'تميمة مدحت أحمد الدهمة'},
            {'id': '31408031801629', 'name': 'ريناد رزق سالم أبونوارج'},
            {'id': '31001311801966', 'name': 'سمية عمر محمد القريشي'},
            {'id': '31601261802378', 'name': 'محمد محمود إبراهيم الرويني'},
        ],
    },
}


def seed_data(store) -> None:
    """Overwrite the teachers slot with the built-in teachers.

    Other collections are left alone; this is a destructive restore of the
    teachers only.
    """
    store.import_data({'teachers': SEED_TEACHERS})


def main() -> None:
    # Imported here because record_store takes its default seed from this module.
    from config import Config
    from record_store import open_store

    target = sys.argv[1] if len(sys.argv) > 1 else Config.SQLALCHEMY_DATABASE_URI
    store = open_store(target, key_prefix=Config.STORE_KEY_PREFIX)
    seed_data(store)
    print(f'Seeded {len(SEED_TEACHERS)} teachers into {target}.')


if __name__ == '__main__':
    main()
