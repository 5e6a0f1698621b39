# psych_core/catalog.py
from __future__ import annotations
from typing import Dict

from . import config
from .types import Instrument

INSTRUMENT_INFO: Dict[Instrument, Dict[str, object]] = {
    Instrument.MBTI: {
        "label": "MBTI",
        "name": "MBTI (Myers-Briggs Type Indicator)",
        "description": "Tes kepribadian untuk memahami preferensi dalam melihat dunia dan membuat keputusan.",
        "kind": "dichotomy",
    },
    Instrument.KRAEPELIN: {
        "label": "Tes Kraepelin",
        "name": "Tes Kraepelin/Pauli",
        "description": "Tes kemampuan numerik dan konsentrasi yang mengukur kecepatan, ketelitian, dan daya tahan kerja.",
        "kind": "aptitude",
    },
    Instrument.PAPI_KOSTICK: {
        "label": "PAPI Kostick",
        "name": "PAPI Kostick Test",
        "description": "Inventory kepribadian yang mengukur aspek-aspek peran dan kebutuhan individu dalam konteks pekerjaan.",
        "kind": "forced_choice",
    },
}


def is_available(instrument: Instrument) -> bool:
    return instrument.value not in config.DISABLED_INSTRUMENTS


def describe(instrument: Instrument) -> Dict[str, object]:
    info = dict(INSTRUMENT_INFO[instrument])
    info["id"] = instrument.value
    info["available"] = is_available(instrument)
    return info


UNKNOWN_TYPE = {
    "title": "Tipe Tidak Dikenal",
    "description": "Deskripsi untuk tipe ini belum tersedia.",
}

TYPE_DESCRIPTIONS: Dict[str, Dict[str, str]] = {
    "ISTJ": {"title": "Sang Pengawas (The Inspector)", "description": "Praktis, bertanggung jawab, dan dapat diandalkan. Fokus pada fakta dan detail."},
    "ISFJ": {"title": "Sang Pelindung (The Protector)", "description": "Hangat, setia, dan teliti. Berdedikasi untuk membantu orang lain."},
    "INFJ": {"title": "Sang Penasihat (The Counselor)", "description": "Idealistis, berwawasan luas, dan penuh empati. Ingin membuat dunia lebih baik."},
    "INTJ": {"title": "Sang Arsitek (The Mastermind)", "description": "Strategis, analitis, dan mandiri. Punya visi jangka panjang."},
    "ISTP": {"title": "Sang Pengrajin (The Craftsman)", "description": "Logis, observan, dan pandai memecahkan masalah praktis."},
    "ISFP": {"title": "Sang Seniman (The Artist)", "description": "Sensitif, baik hati, dan menghargai keindahan. Hidup di saat ini."},
    "INFP": {"title": "Sang Mediator (The Mediator)", "description": "Idealistis, kreatif, dan setia pada nilai-nilai. Ingin memahami orang lain."},
    "INTP": {"title": "Sang Pemikir (The Thinker)", "description": "Inovatif, analitis, dan haus akan pengetahuan. Suka teori dan konsep."},
    "ESTP": {"title": "Sang Dinamo (The Dynamo)", "description": "Energik, suka bertindak, dan pandai beradaptasi. Menyukai tantangan."},
    "ESFP": {"title": "Sang Penghibur (The Performer)", "description": "Antusias, ramah, dan spontan. Suka menjadi pusat perhatian."},
    "ENFP": {"title": "Sang Juara (The Champion)", "description": "Inspiratif, kreatif, dan penuh semangat. Melihat potensi dalam diri orang lain."},
    "ENTP": {"title": "Sang Visioner (The Visionary)", "description": "Cerdas, suka berdebat, dan inovatif. Suka mengeksplorasi ide baru."},
    "ESTJ": {"title": "Sang Eksekutif (The Executive)", "description": "Terorganisasi, tegas, dan efisien. Suka memimpin dan membuat keputusan."},
    "ESFJ": {"title": "Sang Konsul (The Consul)", "description": "Peduli, suka menolong, dan kooperatif. Menikmati harmoni sosial."},
    "ENFJ": {"title": "Sang Protagonis (The Protagonist)", "description": "Karismatik, inspiratif, dan empatik. Ingin memotivasi orang lain."},
    "ENTJ": {"title": "Sang Komandan (The Commander)", "description": "Strategis, tegas, dan berorientasi pada tujuan. Pemimpin alami."},
}

ASPECT_LABELS: Dict[str, str] = {
    "concentration": "Konsentrasi",
    "speed": "Kecepatan",
    "accuracy": "Akurasi",
    "stamina": "Stamina",
}

PROFILE_DESCRIPTIONS: Dict[str, str] = {
    "HIGH_ALL": "Memiliki fokus tinggi, bekerja dengan cepat dan teliti, serta memiliki daya tahan kerja yang sangat baik. Cocok untuk tugas yang menuntut presisi dan kecepatan dalam waktu lama.",
    "HIGH_CONCENTRATION_ACCURACY": "Sangat teliti dan fokus, kecepatan kerja cukup baik. Mampu menjaga kualitas pekerjaan dalam jangka waktu yang cukup.",
    "HIGH_SPEED": "Mampu bekerja dengan sangat cepat, namun ketelitian dan fokus mungkin perlu perhatian lebih pada tugas detail atau jangka panjang.",
    "AVG_ALL": "Kemampuan kerja secara umum seimbang antara kecepatan, ketelitian, dan daya tahan. Adaptif terhadap berbagai jenis tugas.",
    "LOW_ALL": "Cenderung memerlukan lingkungan yang lebih tenang atau tugas yang terstruktur untuk performa optimal. Kecepatan, ketelitian, dan daya tahan mungkin menjadi area pengembangan.",
    "DEFAULT_PROFILE": "Hasil menunjukkan kombinasi berbagai aspek kerja. Dianjurkan untuk melihat skor detail untuk pemahaman lebih lanjut.",
}

DIMENSION_DESCRIPTIONS: Dict[str, Dict[str, str]] = {
    "L": {"name": "Kepemimpinan (L)", "description": "Kebutuhan untuk memimpin, mengambil tanggung jawab, dan mengarahkan orang lain."},
    "P": {"name": "Kecepatan Kerja (P)", "description": "Kebutuhan untuk bekerja dengan cepat dan menyelesaikan tugas secara pribadi."},
    "X": {"name": "Ekstroversi Sosial (X)", "description": "Kebutuhan untuk bersosialisasi, dikenal, dan menjadi pusat perhatian."},
    "A": {"name": "Mengontrol Orang Lain (A)", "description": "Kebutuhan untuk mengatur, mengarahkan, dan mengendalikan orang lain."},
    "R": {"name": "Tipe Teoritis (R)", "description": "Minat pada pemikiran teoritis, abstrak, dan analitis."},
    "D": {"name": "Minat pada Detail (D)", "description": "Kebutuhan untuk bekerja dengan detail, presisi, dan akurasi."},
    "C": {"name": "Tipe Teratur (C)", "description": "Kebutuhan akan keteraturan, perencanaan, dan metode kerja yang sistematis."},
    "O": {"name": "Kebutuhan Kasih Sayang (O)", "description": "Kebutuhan akan hubungan yang dekat, hangat, dan penuh kasih sayang."},
    "B": {"name": "Kebutuhan Diterima Kelompok (B)", "description": "Kebutuhan untuk menjadi bagian dari kelompok dan diterima oleh orang lain."},
    "Z": {"name": "Kebutuhan Aturan & Supervisi (Z)", "description": "Kebutuhan akan aturan yang jelas, panduan, dan supervisi dari atasan."},
    "N": {"name": "Kebutuhan Berprestasi (N)", "description": "Dorongan untuk berprestasi tinggi, bekerja keras, dan mencapai tujuan yang menantang."},
    "G": {"name": "Menyelesaikan Tugas (G)", "description": "Kebutuhan untuk menyelesaikan tugas yang telah dimulai hingga tuntas."},
    "I": {"name": "Perencana & Pengatur (I)", "description": "Peran sebagai perencana, pengatur, dan pembuat keputusan yang cermat."},
    "E": {"name": "Pengendalian Emosi (E)", "description": "Kebutuhan untuk mengendalikan emosi dan tidak menunjukkannya secara berlebihan."},
    "S": {"name": "Suportif (S)", "description": "Kebutuhan untuk mendukung atasan, loyal, dan membantu orang lain."},
    "K": {"name": "Kebutuhan Agresif (K)", "description": "Kebutuhan untuk bersikap asertif, kompetitif, dan kadang agresif untuk mencapai tujuan."},
    "T": {"name": "Kebutuhan Perubahan (T)", "description": "Kebutuhan akan variasi, perubahan, dan hal-hal baru dalam pekerjaan."},
    "V": {"name": "Kebutuhan Mempertahankan Diri (V)", "description": "Kebutuhan untuk bersikap tegas, mempertahankan pendapat, dan berani."},
    "W": {"name": "Mudah Membuat Keputusan (W)", "description": "Kemudahan dan kecepatan dalam mengambil keputusan."},
    "F": {"name": "Tipe Pekerja Keras/Tekun (F)", "description": "Kebutuhan untuk bekerja keras, tekun, dan tidak mudah menyerah pada tugas."},
}

PREFERENCE_LEAD = "Preferensi peran dan kebutuhan Anda menunjukkan kecenderungan terhadap: "
NO_PREFERENCE = (
    "Pola jawaban Anda tidak menunjukkan preferensi yang sangat menonjol "
    "pada aspek tertentu dalam simulasi ini."
)
