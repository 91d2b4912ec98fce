"""
Card Actions - Transfer, swap, clone, flip and removal of cards in hands.

Each action checks everything before it moves anything, so a failed
action leaves every hand as it was.

CLONES:
- A clone is its own card (own id) with clone_source -> the copied card
- The session CloneMap lists, per source card, the clones made from it
- Chain depth = hops of clone_source back to a non-clone original
- Removing a card removes every clone made from it, recursively

BLOCKING RULES:
An active rule whose text contains "cannot clone", "cannot flip" or
"cannot swap" (any case) blocks that action for everyone.
"""

from __future__ import annotations
from typing import Iterable
import logging

from ..config import EngineConfig
from ..engine_core.action import ActionResult, Effect, EffectType, ErrorCode
from ..engine_core.state import Card, Player, Session
from .store import SessionStore


logger = logging.getLogger(__name__)


CLONE_BLOCK_KEYWORD = "cannot clone"
FLIP_BLOCK_KEYWORD = "cannot flip"
SWAP_BLOCK_KEYWORD = "cannot swap"


def is_blocked(rule_texts: Iterable[str], keyword: str) -> bool:
    """True if any rule text contains the keyword."""
    keyword = keyword.lower()
    return any(keyword in (text or "").lower() for text in rule_texts)


class CardActions:

    def __init__(self, store: SessionStore, config: EngineConfig):
        self.store = store
        self.config = config

    # =========================================================================
    # Lookups
    # =========================================================================

    def _member(self, session: Session, player_id: str) -> Player | None:
        if not session.is_member(player_id):
            return None
        return self.store.get_player(player_id)

    def find_card(self, session: Session, card_id: str) -> tuple[Player, Card] | None:
        """Locate a card in any member's hand."""
        for player in self.store.players_of(session):
            card = player.find_card(card_id)
            if card is not None:
                return player, card
        return None

    def chain_depth(self, session: Session, card: Card) -> int:
        """
        Number of clone hops from `card` back to its original.

        Sources are looked up by id in every hand, so a source that changed
        hands is still followed. The walk stops at a missing source.
        """
        depth = 0
        seen = {card.id}
        current = card
        while current.is_clone and current.clone_source is not None:
            depth += 1
            found = self.find_card(session, current.clone_source.card_id)
            if found is None or found[1].id in seen:
                break
            current = found[1]
            seen.add(current.id)
        return depth

    # =========================================================================
    # Actions
    # =========================================================================

    def transfer_card(
        self,
        session: Session,
        from_player_id: str,
        to_player_id: str,
        card_id: str,
    ) -> ActionResult:
        if session.has_pending_callout:
            return ActionResult.failure(
                "Cannot transfer cards while a callout is pending referee decision.",
                ErrorCode.CALLOUT_PENDING,
            )
        giver = self._member(session, from_player_id)
        receiver = self._member(session, to_player_id)
        if giver is None or receiver is None:
            return ActionResult.failure(
                "Both players must be in this game session.", ErrorCode.PLAYER_NOT_FOUND
            )
        card = giver.pop_card(card_id)
        if card is None:
            return ActionResult.failure(
                f"Card {card_id} not found in {from_player_id}'s hand.", ErrorCode.CARD_NOT_FOUND
            )
        receiver.hand.append(card)
        if card.is_clone:
            session.clone_map.update_owner(card.id, to_player_id)
        logger.info("Card %s moved from %s to %s", card_id, from_player_id, to_player_id)
        return ActionResult.ok(
            [Effect(
                EffectType.CARD_MOVED,
                player_id=from_player_id,
                target_player_id=to_player_id,
                card_id=card_id,
            )],
            card=card.to_dict(),
        )

    def swap_cards(
        self,
        session: Session,
        player_a_id: str,
        player_b_id: str,
        card_a_id: str,
        card_b_id: str,
        active_rule_texts: Iterable[str] = (),
    ) -> ActionResult:
        """Exchange one card from each hand."""
        if session.has_pending_callout:
            return ActionResult.failure(
                "Cannot transfer cards while a callout is pending referee decision.",
                ErrorCode.CALLOUT_PENDING,
            )
        if is_blocked(active_rule_texts, SWAP_BLOCK_KEYWORD):
            return ActionResult.failure(
                "An active rule prevents swapping cards.", ErrorCode.SWAP_BLOCKED
            )
        player_a = self._member(session, player_a_id)
        player_b = self._member(session, player_b_id)
        if player_a is None or player_b is None:
            return ActionResult.failure(
                "Both players must be in this game session.", ErrorCode.PLAYER_NOT_FOUND
            )
        if player_a_id == player_b_id:
            return ActionResult.failure(
                "Cannot swap cards with yourself.", ErrorCode.TARGET_NOT_FOUND
            )
        if player_a.find_card(card_a_id) is None:
            return ActionResult.failure(
                f"Card {card_a_id} not found in {player_a_id}'s hand.", ErrorCode.CARD_NOT_FOUND
            )
        if player_b.find_card(card_b_id) is None:
            return ActionResult.failure(
                f"Card {card_b_id} not found in {player_b_id}'s hand.", ErrorCode.CARD_NOT_FOUND
            )

        card_a = player_a.pop_card(card_a_id)
        card_b = player_b.pop_card(card_b_id)
        player_a.hand.append(card_b)
        player_b.hand.append(card_a)
        for card, owner in ((card_a, player_b_id), (card_b, player_a_id)):
            if card.is_clone:
                session.clone_map.update_owner(card.id, owner)

        logger.info(
            "Swapped %s (%s) with %s (%s)", card_a_id, player_a_id, card_b_id, player_b_id
        )
        return ActionResult.ok(
            [Effect(
                EffectType.CARDS_SWAPPED,
                player_id=player_a_id,
                target_player_id=player_b_id,
                data={"card_a_id": card_a_id, "card_b_id": card_b_id},
            )],
            card_a=card_a.to_dict(),
            card_b=card_b.to_dict(),
        )

    def clone_card(
        self,
        session: Session,
        player_id: str,
        target_player_id: str,
        target_card_id: str,
        active_rule_texts: Iterable[str] = (),
    ) -> ActionResult:
        """Copy another player's card into the acting player's hand."""
        player = self._member(session, player_id)
        target = self._member(session, target_player_id)
        if player is None:
            return ActionResult.failure(
                "Player is not in this game session.", ErrorCode.PLAYER_NOT_FOUND
            )
        if target is None:
            return ActionResult.failure(
                "Target player is not in this game session.", ErrorCode.TARGET_NOT_FOUND
            )
        source = target.find_card(target_card_id)
        if source is None:
            return ActionResult.failure(
                f"Card {target_card_id} not found in {target_player_id}'s hand.",
                ErrorCode.CARD_NOT_FOUND,
            )
        if is_blocked(active_rule_texts, CLONE_BLOCK_KEYWORD):
            return ActionResult.failure(
                "An active rule prevents cloning cards.", ErrorCode.CLONE_BLOCKED
            )
        depth = self.chain_depth(session, source)
        if depth >= self.config.clone_depth_limit:
            return ActionResult.failure(
                f"Clone chain limit of {self.config.clone_depth_limit} reached.",
                ErrorCode.CLONE_CHAIN_LIMIT_EXCEEDED,
            )

        clone = source.create_clone(owner_id=target_player_id)
        player.hand.append(clone)
        session.clone_map.register(source.id, player_id, clone.id)
        logger.info("%s cloned %s from %s as %s", player_id, source.id, target_player_id, clone.id)
        return ActionResult.ok(
            [Effect(
                EffectType.CARD_CLONED,
                player_id=player_id,
                target_player_id=target_player_id,
                card_id=clone.id,
                data={"source_card_id": source.id, "chain_depth": depth + 1},
            )],
            card=clone.to_dict(),
            clone_id=clone.id,
            chain_depth=depth + 1,
        )

    def flip_card(
        self,
        session: Session,
        player_id: str,
        card_id: str,
        active_rule_texts: Iterable[str] = (),
    ) -> ActionResult:
        player = self._member(session, player_id)
        if player is None:
            return ActionResult.failure(
                "Player is not in this game session.", ErrorCode.PLAYER_NOT_FOUND
            )
        card = player.find_card(card_id)
        if card is None:
            return ActionResult.failure(
                f"Card {card_id} not found in {player_id}'s hand.", ErrorCode.CARD_NOT_FOUND
            )
        if is_blocked(active_rule_texts, FLIP_BLOCK_KEYWORD):
            return ActionResult.failure(
                "An active rule prevents flipping cards.", ErrorCode.FLIP_BLOCKED
            )
        if not card.flip():
            return ActionResult.failure(
                "This card cannot be flipped.", ErrorCode.CARD_NOT_FLIPPABLE
            )
        return ActionResult.ok(
            [Effect(
                EffectType.CARD_FLIPPED,
                player_id=player_id,
                card_id=card_id,
                data={"current_side": card.current_side.value, "text": card.current_text},
            )],
            card=card.to_dict(),
            current_side=card.current_side.value,
        )

    def remove_card_from_player(
        self, session: Session, player_id: str, card_id: str
    ) -> ActionResult:
        """Remove a card and every clone made from it."""
        player = self._member(session, player_id)
        if player is None:
            return ActionResult.failure(
                "Player is not in this game session.", ErrorCode.PLAYER_NOT_FOUND
            )
        card = player.pop_card(card_id)
        if card is None:
            return ActionResult.failure(
                f"Card {card_id} not found in {player_id}'s hand.", ErrorCode.CARD_NOT_FOUND
            )
        removed: list[tuple[str, str]] = [(player_id, card.id)]
        self._detach(session, card)
        self._cascade(session, card.id, removed)
        effects = [
            Effect(EffectType.CARD_REMOVED, player_id=owner_id, card_id=removed_id)
            for owner_id, removed_id in removed
        ]
        return ActionResult.ok(effects, removed_card_ids=[rid for _, rid in removed])

    def _detach(self, session: Session, card: Card) -> None:
        if card.is_clone and card.clone_source is not None:
            session.clone_map.detach(card.clone_source.card_id, card.id)

    def _cascade(self, session: Session, source_id: str, removed: list[tuple[str, str]]) -> None:
        for ref in session.clone_map.clones_of(source_id):
            owner = self.store.get_player(ref.owner_id)
            clone = owner.pop_card(ref.clone_id) if owner is not None else None
            owner_id = ref.owner_id
            if clone is None:
                found = self.find_card(session, ref.clone_id)
                if found is not None:
                    owner_id = found[0].player_id
                    clone = found[0].pop_card(ref.clone_id)
            if clone is not None:
                removed.append((owner_id, clone.id))
            self._cascade(session, ref.clone_id, removed)
        session.clone_map.drop(source_id)
