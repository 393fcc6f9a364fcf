"""
Unit tests for genetic codes, translation and stop codon counting.
"""

import unittest

from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

from sangermerge import genetic_code
from sangermerge.errors import ConfigurationError, InvalidInputError


class TestGeneticCode(unittest.TestCase):
    """Test genetic code construction."""

    def test_standard_code(self):
        code = genetic_code.STANDARD_GENETIC_CODE
        self.assertEqual(len(code), 64)
        self.assertEqual(code["ATG"], "M")
        self.assertEqual(code["TAA"], "*")
        self.assertEqual(code["TGA"], "*")

    def test_vertebrate_mitochondrial_code(self):
        code = genetic_code.get_genetic_code(2)
        self.assertEqual(code["TGA"], "W")
        self.assertEqual(code["AGA"], "*")

    def test_unknown_table(self):
        with self.assertRaises(ConfigurationError):
            genetic_code.get_genetic_code(999)

    def test_code_is_read_only(self):
        with self.assertRaises(TypeError):
            genetic_code.STANDARD_GENETIC_CODE["AAA"] = "X"

    def test_resolve_copies_user_mapping(self):
        user_code = dict(genetic_code.STANDARD_GENETIC_CODE)
        resolved = genetic_code.resolve_genetic_code(user_code)
        user_code["ATG"] = "X"
        self.assertEqual(resolved["ATG"], "M")

    def test_translate(self):
        code = genetic_code.STANDARD_GENETIC_CODE
        self.assertEqual(genetic_code.translate("ATGAAATAGC", code), "MK*")
        self.assertEqual(genetic_code.translate("ATGNNN", code), "MX")


class TestCountStopCodons(unittest.TestCase):
    """Test the stop codon counter."""

    def test_two_stops_frame_one(self):
        self.assertEqual(genetic_code.count_stop_codons("TAATAG", reading_frame=1), 2)

    def test_frame_two(self):
        self.assertEqual(genetic_code.count_stop_codons("ATAATAG", reading_frame=2), 2)

    def test_frame_three(self):
        self.assertEqual(genetic_code.count_stop_codons("GGTAAGG", reading_frame=3), 1)

    def test_no_stops(self):
        self.assertEqual(genetic_code.count_stop_codons("ATGAAACCC"), 0)

    def test_accepts_seq_and_seqrecord(self):
        self.assertEqual(genetic_code.count_stop_codons(Seq("TAATAG")), 2)
        self.assertEqual(genetic_code.count_stop_codons(SeqRecord(Seq("taatag"), id="x")), 2)

    def test_short_sequence_warns_and_returns_none(self):
        with self.assertLogs("sangermerge.genetic_code", level="WARNING"):
            result = genetic_code.count_stop_codons("TA", reading_frame=1)
        self.assertIsNone(result)

    def test_short_for_frame(self):
        with self.assertLogs("sangermerge.genetic_code", level="WARNING"):
            self.assertIsNone(genetic_code.count_stop_codons("ATG", reading_frame=2))

    def test_invalid_frame(self):
        with self.assertRaises(ConfigurationError):
            genetic_code.count_stop_codons("TAATAG", reading_frame=4)
        with self.assertRaises(ConfigurationError):
            genetic_code.count_stop_codons("TAATAG", reading_frame=0)

    def test_invalid_sequence_type(self):
        with self.assertRaises(InvalidInputError):
            genetic_code.count_stop_codons(12345)

    def test_code_without_stops(self):
        with self.assertRaises(ConfigurationError):
            genetic_code.count_stop_codons("AAAAAA", genetic_code={"AAA": "K"})

    def test_custom_code(self):
        code = genetic_code.get_genetic_code(2)
        self.assertEqual(genetic_code.count_stop_codons("AGATGA", genetic_code=code), 1)


if __name__ == "__main__":
    unittest.main()
