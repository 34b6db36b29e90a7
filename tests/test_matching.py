from psyconnect.conversation.state import ClinicalSummary, RecommendationPreferences, SafetyConcerns
from psyconnect.matching.engine import match_psychiatrists, rank, score_candidate
from psyconnect.matching.loader import Psychiatrist, load_psychiatrists


def doc(pid, **kw):
    base = dict(id=pid, name=f"Dr. {pid}", rating=4.0, years_experience=10)
    base.update(kw)
    return Psychiatrist(**base)


def test_psychosis_bonus_is_exactly_four():
    summary = ClinicalSummary(
        symptoms=["hearing voices"],
        safety_concerns=SafetyConcerns(hallucinations=True),
    )
    tagged = doc("a", tags=["psychosis"])
    plain = doc("b", tags=[])
    assert score_candidate(tagged, summary) - score_candidate(plain, summary) == 4


def test_no_bonus_without_reported_psychosis():
    summary = ClinicalSummary(symptoms=["low mood"])
    assert score_candidate(doc("a", tags=["schizophrenia"]), summary) == score_candidate(doc("b"), summary)


def test_symptom_and_diagnosis_weights():
    summary = ClinicalSummary(symptoms=["depression", "insomnia"], diagnoses=["major depression"])
    d = doc("a", rating=0, years_experience=0, tags=["insomnia"], specialties=["Depression"])
    # tag in symptoms +2, specialty in symptoms +2, specialty in diagnoses +3
    assert score_candidate(d, summary) == 7


def test_insurance_and_location_bonuses():
    summary = ClinicalSummary()
    d = doc("a", rating=0, years_experience=0, location="Chicago, IL",
            insurance_carriers=["Aetna", "Cigna"], in_network_carriers=["Aetna"])
    assert score_candidate(d, summary, RecommendationPreferences(insurance_carrier="aetna")) == 4
    assert score_candidate(d, summary, RecommendationPreferences(insurance_carrier="Cigna")) == 3
    assert score_candidate(d, summary, RecommendationPreferences(location="chicago")) == 2
    assert score_candidate(d, summary, RecommendationPreferences(location="Sunnyvale")) == 0


def test_ties_keep_directory_order():
    summary = ClinicalSummary()
    docs = [doc("x"), doc("y"), doc("z")]
    assert [m.psychiatrist.id for m in rank(docs, summary)] == ["x", "y", "z"]


def test_hard_filters():
    summary = ClinicalSummary()
    docs = [
        doc("closed", accepts_new_patients=False, rating=5),
        doc("f", gender="female", in_network_carriers=["Aetna"]),
        doc("m", gender="male", in_network_carriers=["Cigna"]),
    ]
    assert [m.psychiatrist.id for m in match_psychiatrists(docs, summary)] == ["f", "m"]
    prefs = RecommendationPreferences(gender_preference="male")
    assert [m.psychiatrist.id for m in match_psychiatrists(docs, summary, prefs)] == ["m"]
    prefs = RecommendationPreferences(insurance_carrier="Aetna", in_network_only=True)
    assert [m.psychiatrist.id for m in match_psychiatrists(docs, summary, prefs)] == ["f"]
    prefs = RecommendationPreferences(accepting_new_patients_only=False)
    assert match_psychiatrists(docs, summary, prefs)[0].psychiatrist.id == "closed"


def test_limit_and_empty_directory():
    summary = ClinicalSummary()
    assert match_psychiatrists([], summary) == []
    assert len(match_psychiatrists([doc(str(i)) for i in range(9)], summary, limit=3)) == 3


def test_directory_prefers_psychosis_specialist():
    summary = ClinicalSummary(
        symptoms=["hearing voices", "paranoia"],
        safety_concerns=SafetyConcerns(hallucinations=True, delusions=True),
    )
    top = match_psychiatrists(load_psychiatrists(), summary)[0]
    assert top.psychiatrist.id == "psy-002"
    assert all(m.psychiatrist.accepts_new_patients for m in match_psychiatrists(load_psychiatrists(), summary, limit=10))
